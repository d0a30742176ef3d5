#!/usr/bin/env python3
"""
Session Renewal for Encrypted Remote Libraries

An encrypted Seafile library only stays unlocked for a limited time after
a decrypt call. The renewer re-issues that call on the scheduler's cadence.
"""

import logging
from typing import Optional

from .errors import AuthenticationDenied, StorageConnectionError
from .storage import StorageBackend


class SessionRenewer:
    """
    Keeps the remote target unlocked.

    An explicit denial is fatal because every later save would fail
    against a locked library. A communication error only skips this
    renewal; the next one retries.
    """

    def __init__(self, backend: StorageBackend, secret: Optional[str], metrics):
        self.backend = backend
        self.secret = secret
        self.metrics = metrics
        self.authenticated = False

    @property
    def active(self) -> bool:
        return bool(self.secret) and self.backend.requires_authentication

    def renew(self) -> bool:
        """
        Issue one authenticate call.

        Returns:
            True if the target is unlocked, False after a communication error

        Raises:
            AuthenticationDenied: If the target refused the secret
        """
        if not self.active:
            return True

        logging.info("Decrypting library resource: %s", self.backend.location)
        try:
            success = self.backend.authenticate(self.secret)
        except StorageConnectionError as e:
            logging.error("Library decryption request failed, will retry: %s", e)
            self.authenticated = False
            self.metrics.record_renewal(success=False, authenticated=False)
            return False

        self.authenticated = success
        self.metrics.record_renewal(success=success, authenticated=success)

        if not success:
            logging.error("Was not able to decrypt library resource: %s", self.backend.location)
            raise AuthenticationDenied(f"Decryption of {self.backend.location} was refused")

        logging.info("Successfully decrypted library resource: %s", self.backend.location)
        return True
