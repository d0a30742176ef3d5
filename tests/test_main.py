"""Tests for daemon startup."""

from unittest import mock

import pytest

from image_watcher import main as main_module
from image_watcher.errors import AuthenticationDenied, StorageConnectionError
from image_watcher.seafile import SeafileClient

REMOTE_ENV = {
    "CAM_IMAGE_URL1": "http://cam1/snapshot.jpg",
    "CAM_STORAGE_MODE": "remote",
    "CAM_SEAFILE_URL": "https://seafile.example.org",
    "CAM_SEAFILE_APITOKEN": "token",
    "CAM_SEAFILE_LIBRARY_ID": "lib-1",
    "CAM_SEAFILE_ENCRYPTION_KEY": "secret",
}


@pytest.fixture
def remote_env(monkeypatch, tmp_path):
    for name, value in REMOTE_ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv("CAM_FONT_FILE", str(tmp_path / "missing.ttf"))


@pytest.fixture
def fake_client(monkeypatch):
    client = mock.Mock(spec=SeafileClient)
    client.library_id = "lib-1"
    client.get_library.return_value = {'id': 'lib-1', 'name': 'Cameras'}
    monkeypatch.setattr(main_module, "SeafileClient", mock.Mock(return_value=client))
    return client


@pytest.fixture
def scheduler_cls(monkeypatch):
    scheduler_cls = mock.Mock()
    monkeypatch.setattr(main_module, "Scheduler", scheduler_cls)
    monkeypatch.setattr(main_module.signal, "signal", mock.Mock())
    return scheduler_cls


def test_denied_decryption_exits_before_any_save(remote_env, fake_client, scheduler_cls):
    fake_client.decrypt.return_value = False

    with pytest.raises(SystemExit) as exc:
        main_module.main([])

    assert exc.value.code == 1
    fake_client.upload.assert_not_called()
    scheduler_cls.assert_not_called()


def test_unreachable_library_exits(remote_env, fake_client, scheduler_cls):
    fake_client.get_library.side_effect = StorageConnectionError("down")

    with pytest.raises(SystemExit) as exc:
        main_module.main([])

    assert exc.value.code == 1
    scheduler_cls.assert_not_called()


def test_decryption_communication_error_at_startup_exits(remote_env, fake_client, scheduler_cls):
    fake_client.decrypt.side_effect = StorageConnectionError("timeout")

    with pytest.raises(SystemExit) as exc:
        main_module.main([])

    assert exc.value.code == 1


def test_successful_startup_runs_loop(remote_env, fake_client, scheduler_cls):
    fake_client.decrypt.return_value = True

    main_module.main([])

    fake_client.decrypt.assert_called_once_with("secret")
    scheduler_cls.return_value.run_forever.assert_called_once()
    context = scheduler_cls.call_args.args[0]
    assert context.renewer.authenticated
    assert context.backend.location == "lib-1:/"


def test_denial_during_loop_exits_non_zero(remote_env, fake_client, scheduler_cls):
    fake_client.decrypt.return_value = True
    scheduler_cls.return_value.run_forever.side_effect = AuthenticationDenied("refused")

    with pytest.raises(SystemExit) as exc:
        main_module.main([])

    assert exc.value.code == 1


def test_invalid_configuration_exits(monkeypatch, scheduler_cls):
    for i in range(1, 10):
        monkeypatch.delenv(f"CAM_IMAGE_URL{i}", raising=False)

    with pytest.raises(SystemExit) as exc:
        main_module.main([])

    assert exc.value.code == 1


def test_local_startup(monkeypatch, tmp_path, scheduler_cls):
    monkeypatch.setenv("CAM_IMAGE_URL1", "http://cam1/snapshot.jpg")
    monkeypatch.setenv("CAM_STORAGE_MODE", "local")
    monkeypatch.setenv("CAM_STORAGE_PATH", str(tmp_path / "frames"))
    monkeypatch.setenv("CAM_FONT_FILE", str(tmp_path / "missing.ttf"))

    main_module.main([])

    context = scheduler_cls.call_args.args[0]
    assert not context.renewer.active
    assert (tmp_path / "frames").is_dir()
