"""
Backend storage client for the wallet_backup package.

The client is the provider-agnostic surface the application talks to. It
resolves (or creates) the application root folder once, then forwards
list/upload/download/create-folder calls to the provider bound to the
session. Every call blocks for its network round trips and is meant to be
run off the caller's interactive thread.

Known limitation: resolving the root folder is a query followed by a
create. Two clients of the same account doing this at the same moment can
both miss the folder and create one each. Later clients pick the first
folder the provider returns.
"""

import logging
import threading
from dataclasses import replace
from enum import Enum
from typing import List, Optional

from ..auth.session import Session
from ..config import AppConfig
from ..errors import InternalStateError, InvalidArgumentError, UnauthenticatedError
from ..models.file_entry import FileEntry
from ..storage import get_provider_class, get_storage_provider
from ..storage.base import ProgressCallback, StorageProvider

logger = logging.getLogger(__name__)


class ClientState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class BackendStorageClient:
    """Uniform file operations against one provider account."""

    def __init__(self, session: Optional[Session], config: Optional[AppConfig] = None,
                 adapter: Optional[StorageProvider] = None, connect: bool = True):
        """
        Binds the client to a session.

        Args:
            session: The signed-in session. Read only; the client never changes it.
            config: Supplies the app folder name and transfer chunk size.
            adapter: A provider implementation to use instead of the registered one.
            connect: Resolve the app root folder right away. With False the client
                stays UNINITIALIZED until ensure_app_root_folder() is called.

        Raises:
            UnauthenticatedError: No session, or it lacks the provider's scopes.
                Raised before any network call.
            InvalidArgumentError: Unknown provider, or adapter and session disagree.
        """
        self.config = config or AppConfig()
        if session is None:
            raise UnauthenticatedError(getattr(adapter, "provider_type", "unknown"),
                                       "No signed-in session")
        if adapter is not None:
            if adapter.provider_type != session.provider:
                raise InvalidArgumentError(adapter.provider_type,
                                           f"Session belongs to provider '{session.provider}'")
            required_scopes = adapter.required_scopes
        else:
            required_scopes = get_provider_class(session.provider).required_scopes
        if not session.is_authorized(required_scopes):
            raise UnauthenticatedError(session.provider,
                                       "Session is not signed in with the required scopes")

        self.session = session
        self.provider = adapter or get_storage_provider(session, self.config)
        self._app_folder_id: Optional[str] = None
        if connect:
            self.ensure_app_root_folder()

    @property
    def state(self) -> ClientState:
        return ClientState.READY if self._app_folder_id is not None else ClientState.UNINITIALIZED

    @property
    def app_folder_id(self) -> Optional[str]:
        return self._app_folder_id

    @property
    def provider_type(self) -> str:
        return self.provider.provider_type

    def ensure_app_root_folder(self) -> str:
        """
        Returns the id of the application root folder, creating it if needed.

        The id is cached for the lifetime of the client; later calls do not
        touch the network.
        """
        if self._app_folder_id is not None:
            return self._app_folder_id

        name = self.config.app_folder_name
        existing = self.provider.find_folders(name)
        if existing:
            if len(existing) > 1:
                logger.warning(f"Found {len(existing)} '{name}' folders on {self.provider_type}; "
                               f"using {existing[0].id}")
            folder_id = existing[0].id
            logger.info(f"Using existing app folder '{name}' ({folder_id}) on {self.provider_type}")
        else:
            folder_id = self.provider.create_folder(None, name).id
            logger.info(f"Created app folder '{name}' ({folder_id}) on {self.provider_type}")
        self._app_folder_id = folder_id
        return folder_id

    def _require_ready(self, operation: str):
        if self._app_folder_id is None:
            raise InternalStateError(self.provider_type,
                                     f"Cannot {operation} before the app folder is resolved")

    def _bind(self, entry: FileEntry) -> FileEntry:
        return replace(entry, provider=self.provider_type, account=self.session.account)

    def _check_binding(self, entry, role: str):
        if not isinstance(entry, FileEntry):
            raise InvalidArgumentError(self.provider_type, f"{role} must be a FileEntry, got {type(entry).__name__}")
        if entry.provider is not None and entry.provider != self.provider_type:
            raise InvalidArgumentError(self.provider_type,
                                       f"{role} {entry.id} belongs to provider '{entry.provider}'")
        if entry.account is not None and entry.account != self.session.account:
            raise InvalidArgumentError(self.provider_type,
                                       f"{role} {entry.id} belongs to another account")

    def _resolve_folder(self, folder: Optional[FileEntry]) -> str:
        """None means the app root folder."""
        if folder is None:
            return self._app_folder_id
        self._check_binding(folder, "Folder")
        if not folder.is_directory:
            raise InvalidArgumentError(self.provider_type, f"{folder.name or folder.id} is not a folder")
        return folder.id

    def list(self, folder: Optional[FileEntry] = None) -> List[FileEntry]:
        """Lists the direct, non-trashed children of `folder`. Order is provider-defined."""
        self._require_ready("list")
        parent_id = self._resolve_folder(folder)
        return [self._bind(entry) for entry in self.provider.list_folder(parent_id)]

    def upload(self, folder: Optional[FileEntry], local_path: str,
               progress: Optional[ProgressCallback] = None,
               cancel_event: Optional[threading.Event] = None) -> FileEntry:
        """Uploads `local_path` into `folder`. The local file is never modified or removed."""
        self._require_ready("upload")
        parent_id = self._resolve_folder(folder)
        return self._bind(self.provider.upload_file(parent_id, local_path, progress, cancel_event))

    def download(self, entry: FileEntry, destination_dir: str,
                 progress: Optional[ProgressCallback] = None,
                 cancel_event: Optional[threading.Event] = None) -> str:
        """Downloads a remote file into destination_dir and returns the local path."""
        self._require_ready("download")
        self._check_binding(entry, "Entry")
        if entry.is_directory:
            raise InvalidArgumentError(self.provider_type, f"{entry.name or entry.id} is a folder")
        return self.provider.download_file(entry, destination_dir, progress, cancel_event)

    def create_folder(self, parent: Optional[FileEntry], name: str) -> FileEntry:
        self._require_ready("create a folder")
        if not name or not name.strip():
            raise InvalidArgumentError(self.provider_type, "Folder name must not be empty")
        parent_id = self._resolve_folder(parent)
        return self._bind(self.provider.create_folder(parent_id, name))
