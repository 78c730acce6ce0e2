"""Cloud backup storage backends: one client contract over Google Drive and Dropbox."""

from .auth.dropbox_auth import DropboxAuthManager
from .auth.google_auth import GoogleDriveAuthManager
from .auth.session import Session, SignInFlow, SignInResult
from .config import AppConfig, get_app_config
from .core.backend_client import BackendStorageClient, ClientState
from .errors import (
    DecodeError,
    FatalError,
    InternalStateError,
    InvalidArgumentError,
    RecoverableError,
    StorageProviderError,
    TransferCancelledError,
    UnauthenticatedError,
)
from .models.file_entry import FileEntry

AUTH_MANAGERS = {
    "google": GoogleDriveAuthManager,
    "dropbox": DropboxAuthManager,
}

__all__ = [
    "AUTH_MANAGERS",
    "AppConfig",
    "BackendStorageClient",
    "ClientState",
    "DecodeError",
    "DropboxAuthManager",
    "FatalError",
    "FileEntry",
    "GoogleDriveAuthManager",
    "InternalStateError",
    "InvalidArgumentError",
    "RecoverableError",
    "Session",
    "SignInFlow",
    "SignInResult",
    "StorageProviderError",
    "TransferCancelledError",
    "UnauthenticatedError",
    "get_app_config",
]
