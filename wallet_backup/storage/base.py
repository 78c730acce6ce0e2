import threading
from abc import ABC, abstractmethod
from typing import Callable, FrozenSet, List, Optional

from ..errors import (  # noqa: F401
    FatalError,
    InvalidArgumentError,
    RecoverableError,
    StorageProviderError,
    TransferCancelledError,
)
from ..models.file_entry import FileEntry

# progress(bytes_done, total_bytes)
ProgressCallback = Callable[[int, int], None]


class StorageProvider(ABC):
    """Abstract base class for all storage providers.

    One concrete subclass per backend. Implementations translate every
    SDK failure into a StorageProviderError subclass; no SDK exception type
    may escape a public method.
    """

    provider_type: str = "unknown"
    required_scopes: FrozenSet[str] = frozenset()

    @abstractmethod
    def list_folder(self, parent_id: str) -> List[FileEntry]:
        """
        Lists the direct children of a folder.

        Args:
            parent_id: Provider id of the folder to list.

        Returns:
            The non-trashed children; an empty list if the folder is empty.

        Raises:
            StorageProviderError: If the listing fails.
        """
        pass

    @abstractmethod
    def find_folders(self, name: str, parent_id: Optional[str] = None) -> List[FileEntry]:
        """
        Finds non-trashed folders called `name` directly under a parent.

        Args:
            name: Exact folder name to look for.
            parent_id: Folder to search in; None means the provider's top-level root.

        Returns:
            Matching folder entries, possibly empty.

        Raises:
            FatalError: Something other than a folder occupies the name, on
                providers where names are unique per parent.
        """
        pass

    @abstractmethod
    def create_folder(self, parent_id: Optional[str], name: str) -> FileEntry:
        """
        Creates a new folder. Does not check for existing folders with the same name.

        Args:
            parent_id: Folder to create in; None means the provider's top-level root.
            name: Display name of the new folder.

        Returns:
            The created folder entry.
        """
        pass

    @abstractmethod
    def upload_file(self, parent_id: str, local_path: str,
                    progress: Optional[ProgressCallback] = None,
                    cancel_event: Optional[threading.Event] = None) -> FileEntry:
        """
        Streams a local file into a new remote file under `parent_id`.

        Args:
            parent_id: Destination folder id.
            local_path: Path of the file to upload. Never modified or deleted.
            progress: Called with (bytes_sent, total_bytes) as the transfer proceeds.
            cancel_event: When set, the transfer stops at the next chunk boundary.

        Returns:
            The entry describing the uploaded file.

        Raises:
            TransferCancelledError: If cancel_event was set during the transfer.
            StorageProviderError: If the upload fails.
        """
        pass

    @abstractmethod
    def download_file(self, entry: FileEntry, destination_dir: str,
                      progress: Optional[ProgressCallback] = None,
                      cancel_event: Optional[threading.Event] = None) -> str:
        """
        Streams a remote file into `destination_dir/entry.name`.

        Returns:
            Path of the completed local file.

        Raises:
            TransferCancelledError: If cancel_event was set during the transfer.
            StorageProviderError: If the download fails. No partial file is left behind.
        """
        pass
