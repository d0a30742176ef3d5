#!/usr/bin/env python3
"""
Seafile Web API Client

Minimal token-authenticated client for the handful of Seafile library
operations the image watcher needs: upload, directory listing, file
removal and library decryption.

Transport problems (connection errors, timeouts, 5xx answers) raise
StorageConnectionError. Explicit refusals are reported as False so callers
can tell a locked library from an unreachable server.
"""

import logging
import posixpath
from typing import Any, Dict, List, Optional

import requests

from .errors import StorageConnectionError


def join_remote_path(directory: str, name: str) -> str:
    """Join a library directory and an entry name into an absolute path."""
    return posixpath.join("/", directory.strip("/"), name)


class SeafileClient:
    """Client bound to a single Seafile library."""

    def __init__(self, base_url: str, api_token: str, library_id: str,
                 timeout: float = 30, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: Seafile server URL, e.g. https://cloud.example.org
            api_token: API token sent as 'Authorization: Token <token>'
            library_id: Target library (repo) id
            timeout: Per-request timeout in seconds
            session: Optional requests session
        """
        self.base_url = base_url.rstrip("/")
        self.library_id = library_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Token {api_token}',
            'Accept': 'application/json',
        })

    def _repo_url(self, suffix: str = "") -> str:
        return f"{self.base_url}/api2/repos/{self.library_id}/{suffix}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, mapping transport failures to StorageConnectionError."""
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise StorageConnectionError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 500:
            raise StorageConnectionError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    @staticmethod
    def _json(response: requests.Response, expected: type, what: str) -> Any:
        """Decode a JSON body of the expected type or raise StorageConnectionError."""
        try:
            payload = response.json()
        except ValueError:
            raise StorageConnectionError(
                f"{what}: unreadable response {response.text[:200]!r}"
            ) from None
        if not isinstance(payload, expected):
            raise StorageConnectionError(f"{what}: unexpected response {payload!r:.200}")
        return payload

    def get_library(self) -> Dict[str, Any]:
        """
        Fetch library metadata; used to verify access at startup.

        Raises:
            StorageConnectionError: If the library cannot be retrieved
        """
        response = self._request('GET', self._repo_url())
        if response.status_code != 200:
            raise StorageConnectionError(
                f"Cannot access library {self.library_id}: HTTP {response.status_code}"
            )
        return self._json(response, dict, f"Library {self.library_id}")

    def decrypt(self, password: str) -> bool:
        """
        Unlock an encrypted library for this session.

        Returns:
            True if the server accepted the password, False if it refused it
        """
        response = self._request('POST', self._repo_url(), data={'password': password})
        if response.status_code == 200:
            return True
        logging.debug("Library decrypt refused: HTTP %d %s",
                      response.status_code, response.text[:200])
        return False

    def upload(self, local_path: str, remote_dir: str, name: str) -> Optional[str]:
        """
        Upload a local file into remote_dir under the given name.

        Returns:
            The id of the uploaded file, or None if the server refused the upload
        """
        response = self._request('GET', self._repo_url("upload-link/"), params={'p': remote_dir})
        if response.status_code != 200:
            logging.error("Could not obtain upload link: HTTP %d %s",
                          response.status_code, response.text[:200])
            return None
        upload_link = self._json(response, str, "Upload link")

        with open(local_path, 'rb') as f:
            response = self._request(
                'POST',
                upload_link,
                params={'ret-json': 1},
                data={'parent_dir': remote_dir, 'replace': 1},
                files={'file': (name, f, 'image/jpeg')},
            )

        if response.status_code != 200:
            logging.error("Upload of %s refused: HTTP %d %s",
                          name, response.status_code, response.text[:200])
            return None

        uploaded = self._json(response, list, f"Upload of {name}")
        if uploaded and isinstance(uploaded[0], dict):
            return uploaded[0].get('id')
        return None

    def list_entries(self, remote_dir: str) -> List[Dict[str, Any]]:
        """
        List the entries of a library directory.

        Returns:
            Dicts with at least 'name', 'type' ('file' or 'dir') and 'mtime' (epoch)

        Raises:
            StorageConnectionError: If the directory cannot be listed
        """
        response = self._request('GET', self._repo_url("dir/"), params={'p': remote_dir})
        if response.status_code != 200:
            raise StorageConnectionError(
                f"Cannot list {remote_dir}: HTTP {response.status_code} {response.text[:200]}"
            )
        return self._json(response, list, f"Listing of {remote_dir}")

    def remove_entry(self, path: str) -> bool:
        """Delete a file from the library; True if the server confirmed it."""
        response = self._request('DELETE', self._repo_url("file/"), params={'p': path})
        return response.status_code == 200
