"""Shared fixtures: sessions and an in-memory, call-counting storage provider."""

import os
import threading
from collections import Counter
from typing import Dict, List, Optional

import pytest

from wallet_backup.auth.session import Session
from wallet_backup.config import AppConfig
from wallet_backup.models.file_entry import FileEntry
from wallet_backup.storage.base import StorageProvider
from wallet_backup.storage.google_drive import SCOPES as DRIVE_SCOPES
from wallet_backup.storage.transfer import (
    TransferMonitor,
    destination_path,
    local_file_size,
    partial_file,
)

ROOT = "root"


class FakeStorageProvider(StorageProvider):
    """Keeps folders and file contents in dicts and counts every call."""

    provider_type = "google"
    required_scopes = frozenset(DRIVE_SCOPES)

    def __init__(self, chunk_size: int = 256):
        self.chunk_size = chunk_size
        self.entries: Dict[str, FileEntry] = {}
        self.contents: Dict[str, bytes] = {}
        self.trashed = set()
        self.calls = Counter()
        self._next_id = 0

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    def add_folder(self, name: str, parent_id: str = ROOT, folder_id: Optional[str] = None) -> FileEntry:
        entry = FileEntry(id=folder_id or self._new_id("F"), name=name, is_directory=True,
                          parent_id=parent_id, provider=self.provider_type)
        self.entries[entry.id] = entry
        return entry

    def add_file(self, name: str, content: bytes, parent_id: str) -> FileEntry:
        entry = FileEntry(id=self._new_id("B"), name=name, size=len(content),
                          parent_id=parent_id, provider=self.provider_type)
        self.entries[entry.id] = entry
        self.contents[entry.id] = content
        return entry

    def list_folder(self, parent_id: str) -> List[FileEntry]:
        self.calls["list_folder"] += 1
        return [e for e in self.entries.values()
                if e.parent_id == parent_id and e.id not in self.trashed]

    def find_folders(self, name: str, parent_id: Optional[str] = None) -> List[FileEntry]:
        self.calls["find_folders"] += 1
        return [e for e in self.entries.values()
                if e.is_directory and e.name == name and e.parent_id == (parent_id or ROOT)
                and e.id not in self.trashed]

    def create_folder(self, parent_id: Optional[str], name: str) -> FileEntry:
        self.calls["create_folder"] += 1
        return self.add_folder(name, parent_id or ROOT)

    def upload_file(self, parent_id, local_path, progress=None, cancel_event=None) -> FileEntry:
        self.calls["upload_file"] += 1
        total = local_file_size(self.provider_type, local_path)
        name = os.path.basename(local_path)
        monitor = TransferMonitor(self.provider_type, name, total, progress, cancel_event)
        data = b""
        with open(local_path, "rb") as f:
            while True:
                monitor.check_cancelled()
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                data += chunk
                monitor.advance(len(chunk))
        monitor.finish()
        return self.add_file(name, data, parent_id)

    def download_file(self, entry, destination_dir, progress=None, cancel_event=None) -> str:
        self.calls["download_file"] += 1
        target = destination_path(self.provider_type, destination_dir, entry.name)
        content = self.contents[entry.id]
        monitor = TransferMonitor(self.provider_type, entry.name, len(content), progress, cancel_event)
        with partial_file(target) as f:
            for start in range(0, len(content), self.chunk_size):
                monitor.check_cancelled()
                chunk = content[start:start + self.chunk_size]
                f.write(chunk)
                monitor.advance(len(chunk))
        monitor.finish()
        return target


@pytest.fixture
def config():
    return AppConfig(app_folder_name="MoneyWallet", chunk_size=256)


@pytest.fixture
def session():
    return Session(provider="google", account="user@example.com",
                   granted_scopes=frozenset(DRIVE_SCOPES))


@pytest.fixture
def fake_provider():
    return FakeStorageProvider()


@pytest.fixture
def cancel_event():
    return threading.Event()


@pytest.fixture
def backup_file(tmp_path):
    path = tmp_path / "backup.zip"
    path.write_bytes(bytes(range(256)) * 4)
    return path
