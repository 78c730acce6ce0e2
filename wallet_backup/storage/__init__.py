from typing import Dict, Optional, Type

from ..auth.session import Session
from ..config import AppConfig
from ..errors import InvalidArgumentError
from .base import StorageProvider
from .dropbox_storage import DropboxStorage
from .google_drive import GoogleDriveStorage

# Mapping from provider identifier to provider class
PROVIDER_MAP: Dict[str, Type[StorageProvider]] = {
    "google": GoogleDriveStorage,
    "dropbox": DropboxStorage,
}


def get_provider_class(provider: str) -> Type[StorageProvider]:
    """
    Looks up the provider class for an identifier.

    Raises:
        InvalidArgumentError: If the provider is unknown.
    """
    provider_class = PROVIDER_MAP.get((provider or "").lower())
    if provider_class is None:
        raise InvalidArgumentError(provider or "unknown", f"Unsupported storage provider: '{provider}'")
    return provider_class


def get_storage_provider(session: Session, config: Optional[AppConfig] = None) -> StorageProvider:
    """
    Factory function to create a storage provider bound to a session.

    Args:
        session: The authenticated session; its `provider` selects the class.
        config: Supplies the transfer chunk size. Defaults to AppConfig().

    Returns:
        An initialized instance of the appropriate StorageProvider subclass.
    """
    provider_class = get_provider_class(session.provider)
    config = config or AppConfig()
    return provider_class(session, chunk_size=config.chunk_size)
