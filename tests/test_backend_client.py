"""Tests for BackendStorageClient against the in-memory provider."""

from unittest.mock import MagicMock, patch

import pytest

from conftest import ROOT, FakeStorageProvider
from wallet_backup.auth.session import Session
from wallet_backup.core.backend_client import BackendStorageClient, ClientState
from wallet_backup.errors import (
    InternalStateError,
    InvalidArgumentError,
    TransferCancelledError,
    UnauthenticatedError,
)
from wallet_backup.models.file_entry import FileEntry


@pytest.fixture
def client(session, config, fake_provider):
    return BackendStorageClient(session, config, adapter=fake_provider)


class TestConstruction:
    def test_missing_session_fails_without_network(self, config, fake_provider):
        with pytest.raises(UnauthenticatedError):
            BackendStorageClient(None, config, adapter=fake_provider)
        assert fake_provider.total_calls == 0

    def test_session_without_scope_fails_without_network(self, config, fake_provider):
        session = Session(provider="google", account="user@example.com",
                          granted_scopes=frozenset({"https://www.googleapis.com/auth/userinfo.email"}))
        with pytest.raises(UnauthenticatedError):
            BackendStorageClient(session, config, adapter=fake_provider)
        assert fake_provider.total_calls == 0

    def test_signed_out_session_fails(self, session, config, fake_provider):
        signed_out = Session(provider="google", account=None, granted_scopes=session.granted_scopes)
        with pytest.raises(UnauthenticatedError):
            BackendStorageClient(signed_out, config, adapter=fake_provider)

    @patch("wallet_backup.core.backend_client.get_storage_provider")
    def test_scope_check_happens_before_provider_is_built(self, mock_factory, config):
        session = Session(provider="dropbox", account="user@example.com")
        with pytest.raises(UnauthenticatedError):
            BackendStorageClient(session, config)
        mock_factory.assert_not_called()

    def test_unknown_provider(self, config):
        session = Session(provider="ftp", account="user@example.com")
        with pytest.raises(InvalidArgumentError):
            BackendStorageClient(session, config)

    def test_adapter_for_other_provider_is_rejected(self, config, fake_provider):
        session = Session(provider="dropbox", account="user@example.com",
                          granted_scopes=fake_provider.required_scopes)
        with pytest.raises(InvalidArgumentError):
            BackendStorageClient(session, config, adapter=fake_provider)

    @patch("wallet_backup.core.backend_client.get_storage_provider")
    def test_registered_provider_is_built_from_session(self, mock_factory, session, config, fake_provider):
        mock_factory.return_value = fake_provider
        client = BackendStorageClient(session, config)
        mock_factory.assert_called_once_with(session, config)
        assert client.provider is fake_provider
        assert client.state is ClientState.READY


class TestEnsureAppRootFolder:
    def test_creates_folder_when_missing(self, client, fake_provider):
        assert fake_provider.calls["create_folder"] == 1
        folder = fake_provider.entries[client.app_folder_id]
        assert folder.name == "MoneyWallet"
        assert folder.parent_id == ROOT

    def test_second_call_reuses_folder(self, client, fake_provider):
        first = client.app_folder_id
        assert client.ensure_app_root_folder() == first
        assert fake_provider.calls["create_folder"] == 1

    def test_new_client_finds_existing_folder(self, client, session, config, fake_provider):
        second = BackendStorageClient(session, config, adapter=fake_provider)
        assert second.app_folder_id == client.app_folder_id
        assert fake_provider.calls["create_folder"] == 1

    def test_sequential_ensure_on_lazy_client(self, session, config, fake_provider):
        client = BackendStorageClient(session, config, adapter=fake_provider, connect=False)
        first = client.ensure_app_root_folder()
        second = client.ensure_app_root_folder()
        assert first == second
        assert fake_provider.calls["create_folder"] == 1

    def test_folder_with_same_name_elsewhere_is_ignored(self, session, config, fake_provider):
        other_parent = fake_provider.add_folder("Archive")
        fake_provider.add_folder("MoneyWallet", parent_id=other_parent.id)
        client = BackendStorageClient(session, config, adapter=fake_provider)
        assert fake_provider.calls["create_folder"] == 1
        assert fake_provider.entries[client.app_folder_id].parent_id == ROOT

    def test_uses_configured_folder_name(self, session, config, fake_provider):
        config.app_folder_name = "WalletBackups"
        client = BackendStorageClient(session, config, adapter=fake_provider)
        assert fake_provider.entries[client.app_folder_id].name == "WalletBackups"


class TestStateMachine:
    def test_lazy_client_is_uninitialized(self, session, config, fake_provider):
        client = BackendStorageClient(session, config, adapter=fake_provider, connect=False)
        assert client.state is ClientState.UNINITIALIZED
        assert fake_provider.total_calls == 0

    @pytest.mark.parametrize("call", [
        lambda c, tmp: c.list(),
        lambda c, tmp: c.upload(None, str(tmp)),
        lambda c, tmp: c.download(FileEntry(id="B1", name="a.zip"), str(tmp)),
        lambda c, tmp: c.create_folder(None, "2024"),
    ])
    def test_operations_before_ready_fail_fast(self, session, config, fake_provider, tmp_path, call):
        client = BackendStorageClient(session, config, adapter=fake_provider, connect=False)
        with pytest.raises(InternalStateError):
            call(client, tmp_path)
        assert fake_provider.total_calls == 0

    def test_ready_after_ensure(self, session, config, fake_provider):
        client = BackendStorageClient(session, config, adapter=fake_provider, connect=False)
        client.ensure_app_root_folder()
        assert client.state is ClientState.READY
        assert client.list() == []


class TestList:
    def test_empty_folder_returns_empty_list(self, client):
        assert client.list() == []

    def test_lists_only_direct_children(self, client, fake_provider):
        sub = fake_provider.add_folder("2024", parent_id=client.app_folder_id)
        fake_provider.add_file("nested.zip", b"x", parent_id=sub.id)
        fake_provider.add_file("top.zip", b"y", parent_id=client.app_folder_id)
        names = {e.name for e in client.list()}
        assert names == {"2024", "top.zip"}

    def test_trashed_entries_are_excluded(self, client, fake_provider):
        kept = fake_provider.add_file("kept.zip", b"1", parent_id=client.app_folder_id)
        gone = fake_provider.add_file("gone.zip", b"2", parent_id=client.app_folder_id)
        fake_provider.trashed.add(gone.id)
        assert [e.id for e in client.list()] == [kept.id]

    def test_entries_are_stamped_with_binding(self, client, fake_provider):
        fake_provider.add_file("a.zip", b"1", parent_id=client.app_folder_id)
        entry = client.list()[0]
        assert entry.provider == "google"
        assert entry.account == "user@example.com"

    def test_list_subfolder(self, client):
        sub = client.create_folder(None, "2024")
        assert client.list(sub) == []

    def test_file_as_folder_is_rejected(self, client):
        with pytest.raises(InvalidArgumentError):
            client.list(FileEntry(id="B1", name="a.zip", is_directory=False))

    def test_folder_from_other_account_is_rejected(self, client):
        foreign = FileEntry(id="F9", name="x", is_directory=True, provider="google",
                            account="other@example.com")
        with pytest.raises(InvalidArgumentError):
            client.list(foreign)


class TestUpload:
    def test_upload_to_app_root(self, client, backup_file):
        sink = MagicMock()
        entry = client.upload(None, str(backup_file), sink)
        assert entry.name == "backup.zip"
        assert entry.size == 1024
        assert entry.is_directory is False
        assert entry.parent_id == client.app_folder_id
        assert sink.call_args_list[-1].args == (1024, 1024)

    def test_progress_is_strictly_increasing(self, client, backup_file):
        seen = []
        client.upload(None, str(backup_file), lambda done, total: seen.append(done))
        assert seen == sorted(set(seen))
        assert seen[-1] == 1024

    def test_terminal_progress_delivered_before_return(self, session, config, backup_file):
        adapter = MagicMock(spec=FakeStorageProvider)
        adapter.provider_type = "google"
        adapter.required_scopes = FakeStorageProvider.required_scopes
        adapter.find_folders.return_value = [FileEntry(id="F1", name="MoneyWallet", is_directory=True)]
        events = []

        def fake_upload(parent_id, local_path, progress, cancel_event):
            for done in (256, 512, 768, 1024):
                progress(done, 1024)
            events.append("returned")
            return FileEntry(id="B1", name="backup.zip", size=1024, parent_id=parent_id)

        adapter.upload_file.side_effect = fake_upload
        client = BackendStorageClient(session, config, adapter=adapter)
        entry = client.upload(None, str(backup_file), lambda done, total: events.append(done))
        assert events == [256, 512, 768, 1024, "returned"]
        assert entry.parent_id == "F1"

    def test_upload_into_subfolder(self, client, backup_file):
        sub = client.create_folder(None, "2024")
        entry = client.upload(sub, str(backup_file))
        assert entry.parent_id == sub.id

    def test_missing_local_file(self, client, tmp_path):
        with pytest.raises(InvalidArgumentError):
            client.upload(None, str(tmp_path / "missing.zip"))

    def test_cancelled_upload(self, client, fake_provider, backup_file, cancel_event):
        def sink(done, total):
            cancel_event.set()

        with pytest.raises(TransferCancelledError):
            client.upload(None, str(backup_file), sink, cancel_event)
        assert client.list() == []

    def test_input_file_is_kept(self, client, backup_file):
        client.upload(None, str(backup_file))
        assert backup_file.exists()


class TestDownload:
    def test_download_round_trip(self, client, backup_file, tmp_path):
        uploaded = client.upload(None, str(backup_file))
        dest = tmp_path / "restore"
        dest.mkdir()
        sink = MagicMock()
        path = client.download(uploaded, str(dest), sink)
        assert path == str(dest / "backup.zip")
        assert (dest / "backup.zip").read_bytes() == backup_file.read_bytes()
        assert sink.call_args_list[-1].args == (1024, 1024)

    def test_cancel_mid_download_leaves_no_file(self, client, backup_file, tmp_path, cancel_event):
        uploaded = client.upload(None, str(backup_file))
        dest = tmp_path / "restore"
        dest.mkdir()

        def sink(done, total):
            if done >= 256:
                cancel_event.set()

        with pytest.raises(TransferCancelledError):
            client.download(uploaded, str(dest), sink, cancel_event)
        assert list(dest.iterdir()) == []

    def test_directory_is_rejected(self, client, tmp_path):
        folder = client.create_folder(None, "2024")
        with pytest.raises(InvalidArgumentError):
            client.download(folder, str(tmp_path))

    def test_entry_from_other_provider_is_rejected(self, client, fake_provider, tmp_path):
        foreign = FileEntry(id="id:xyz", name="a.zip", size=1, provider="dropbox",
                            account="user@example.com")
        with pytest.raises(InvalidArgumentError):
            client.download(foreign, str(tmp_path))
        assert fake_provider.calls["download_file"] == 0

    def test_entry_from_other_account_is_rejected(self, client, fake_provider, tmp_path):
        foreign = FileEntry(id="B1", name="a.zip", size=1, provider="google",
                            account="other@example.com")
        with pytest.raises(InvalidArgumentError):
            client.download(foreign, str(tmp_path))
        assert fake_provider.calls["download_file"] == 0

    def test_persisted_entry_can_be_downloaded(self, client, backup_file, tmp_path):
        uploaded = client.upload(None, str(backup_file))
        restored = FileEntry.decode(uploaded.encode())
        dest = tmp_path / "restore"
        dest.mkdir()
        assert client.download(restored, str(dest)) == str(dest / "backup.zip")

    def test_non_entry_is_rejected(self, client, tmp_path):
        with pytest.raises(InvalidArgumentError):
            client.download({"id": "B1"}, str(tmp_path))


class TestCreateFolder:
    def test_creates_under_app_root(self, client):
        folder = client.create_folder(None, "2024")
        assert folder.is_directory is True
        assert folder.parent_id == client.app_folder_id
        assert folder.account == "user@example.com"

    def test_nested_folder(self, client):
        parent = client.create_folder(None, "2024")
        child = client.create_folder(parent, "May")
        assert child.parent_id == parent.id

    def test_empty_name_is_rejected(self, client):
        with pytest.raises(InvalidArgumentError):
            client.create_folder(None, "  ")


class TestEndToEnd:
    def test_existing_app_folder_backup_scenario(self, session, config, tmp_path):
        provider = FakeStorageProvider()
        provider.add_folder("MoneyWallet", folder_id="F1")
        backup = tmp_path / "backup.zip"
        backup.write_bytes(b"\x00" * 1024)
        progress = []

        client = BackendStorageClient(session, config, adapter=provider)
        assert client.ensure_app_root_folder() == "F1"
        entry = client.upload(None, str(backup), lambda done, total: progress.append(done))

        assert provider.calls["create_folder"] == 0
        assert entry.name == "backup.zip"
        assert entry.size == 1024
        assert entry.is_directory is False
        assert entry.parent_id == "F1"
        assert progress[-1] == 1024
