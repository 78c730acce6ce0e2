import logging
import os
import threading
from typing import List, Optional

import dropbox
import requests
from dropbox.exceptions import (
    ApiError,
    AuthError,
    BadInputError,
    HttpError,
    InternalServerError,
    RateLimitError,
)
from dropbox.files import (
    CommitInfo,
    DeletedMetadata,
    FileMetadata,
    FolderMetadata,
    UploadSessionCursor,
    WriteMode,
)

from ..auth.session import Session
from ..models.file_entry import FileEntry
from .base import (
    FatalError,
    ProgressCallback,
    RecoverableError,
    StorageProvider,
    StorageProviderError,
)
from .transfer import TransferMonitor, destination_path, local_file_size, partial_file

logger = logging.getLogger(__name__)

SCOPES = [
    "account_info.read",
    "files.metadata.read",
    "files.content.read",
    "files.content.write",
]

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024


def _is_not_found(error: ApiError) -> bool:
    """True for the path/not_found variants of the lookup errors we issue."""
    err = error.error
    for is_variant, get_variant in (("is_path", "get_path"), ("is_path_lookup", "get_path_lookup")):
        if getattr(err, is_variant, lambda: False)():
            lookup = getattr(err, get_variant)()
            return lookup.is_not_found()
    return False


class DropboxStorage(StorageProvider):
    """Storage provider implementation for Dropbox using OAuth 2 refresh tokens.

    Entries are keyed by Dropbox file ids ("id:..."), which survive renames
    and moves, instead of paths.
    """

    provider_type = "dropbox"
    required_scopes = frozenset(SCOPES)

    def __init__(self, session: Session, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 dbx: Optional[dropbox.Dropbox] = None):
        """Uses the Dropbox client carried by the session. Makes no network calls."""
        self.session = session
        self.chunk_size = chunk_size
        self.dbx = dbx or session.credentials
        if not isinstance(self.dbx, dropbox.Dropbox):
            raise FatalError(self.provider_type, "Session does not carry a Dropbox client")

    def _translate_error(self, error: Exception, action: str) -> StorageProviderError:
        """Maps a Dropbox SDK / transport exception onto the shared error taxonomy."""
        if isinstance(error, (RateLimitError, InternalServerError)):
            return RecoverableError(self.provider_type, f"{action}: {error}", original_error=error)
        if isinstance(error, (AuthError, BadInputError)):
            return FatalError(self.provider_type, f"{action}: {error}", original_error=error)
        if isinstance(error, HttpError):
            if error.status_code >= 500:
                return RecoverableError(self.provider_type, f"{action}: HTTP {error.status_code}",
                                        original_error=error)
            return FatalError(self.provider_type, f"{action}: HTTP {error.status_code}",
                              original_error=error)
        if isinstance(error, ApiError):
            return FatalError(self.provider_type, f"{action}: {error.error}", original_error=error)
        if isinstance(error, (requests.exceptions.RequestException, OSError)):
            return RecoverableError(self.provider_type, f"{action}: {error}", original_error=error)
        return FatalError(self.provider_type, f"{action}: unexpected error: {error}",
                          original_error=error)

    def _folder_path(self, folder_id: Optional[str]) -> str:
        """Resolves a folder id to its current path; None is the Dropbox root ("")."""
        if not folder_id:
            return ""
        metadata = self.dbx.files_get_metadata(folder_id)
        if not isinstance(metadata, FolderMetadata):
            raise FatalError(self.provider_type, f"{folder_id} is not a folder")
        return metadata.path_lower

    def list_folder(self, parent_id: str) -> List[FileEntry]:
        """Lists a folder, following the cursor until has_more is False."""
        entries = []
        try:
            res = self.dbx.files_list_folder(path=parent_id, recursive=False)
            while True:
                for metadata in res.entries:
                    if isinstance(metadata, DeletedMetadata):
                        continue
                    if isinstance(metadata, (FileMetadata, FolderMetadata)):
                        entries.append(FileEntry.from_dropbox(metadata, parent_id=parent_id))
                if not res.has_more:
                    break
                res = self.dbx.files_list_folder_continue(res.cursor)
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to list folder {parent_id}") from e
        logger.debug(f"Listed {len(entries)} entries in Dropbox folder {parent_id}")
        return entries

    def find_folders(self, name: str, parent_id: Optional[str] = None) -> List[FileEntry]:
        try:
            path = f"{self._folder_path(parent_id)}/{name}"
            try:
                metadata = self.dbx.files_get_metadata(path)
            except ApiError as e:
                if _is_not_found(e):
                    return []
                raise
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to look up folder '{name}'") from e
        if not isinstance(metadata, FolderMetadata):
            # Creating the folder would only autorename around the occupant.
            raise FatalError(self.provider_type,
                             f"'{path}' exists but is not a folder; move or rename it first")
        return [FileEntry.from_dropbox(metadata, parent_id=parent_id)]

    def create_folder(self, parent_id: Optional[str], name: str) -> FileEntry:
        try:
            path = f"{self._folder_path(parent_id)}/{name}"
            result = self.dbx.files_create_folder_v2(path, autorename=True)
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to create folder '{name}'") from e
        logger.info(f"Created Dropbox folder {result.metadata.path_display} ({result.metadata.id})")
        return FileEntry.from_dropbox(result.metadata, parent_id=parent_id)

    def upload_file(self, parent_id: str, local_path: str,
                    progress: Optional[ProgressCallback] = None,
                    cancel_event: Optional[threading.Event] = None) -> FileEntry:
        """Uploads in one request when the file fits a chunk, otherwise through an upload session."""
        total = local_file_size(self.provider_type, local_path)
        name = os.path.basename(local_path)
        monitor = TransferMonitor(self.provider_type, name, total, progress, cancel_event)
        try:
            commit_path = f"{self._folder_path(parent_id)}/{name}"
            with open(local_path, "rb") as f:
                monitor.check_cancelled()
                if total <= self.chunk_size:
                    metadata = self.dbx.files_upload(f.read(), commit_path,
                                                     mode=WriteMode.add, autorename=True)
                    monitor.update(total)
                else:
                    start = self.dbx.files_upload_session_start(f.read(self.chunk_size))
                    cursor = UploadSessionCursor(session_id=start.session_id, offset=f.tell())
                    commit = CommitInfo(path=commit_path, mode=WriteMode.add, autorename=True)
                    monitor.update(cursor.offset)
                    while total - f.tell() > self.chunk_size:
                        monitor.check_cancelled()
                        self.dbx.files_upload_session_append_v2(f.read(self.chunk_size), cursor)
                        cursor.offset = f.tell()
                        monitor.update(cursor.offset)
                    monitor.check_cancelled()
                    metadata = self.dbx.files_upload_session_finish(f.read(self.chunk_size),
                                                                    cursor, commit)
                    monitor.update(f.tell())
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to upload file '{name}'") from e
        monitor.finish()
        logger.info(f"Uploaded '{name}' ({total} bytes) to {metadata.path_display}")
        return FileEntry.from_dropbox(metadata, parent_id=parent_id)

    def download_file(self, entry: FileEntry, destination_dir: str,
                      progress: Optional[ProgressCallback] = None,
                      cancel_event: Optional[threading.Event] = None) -> str:
        target = destination_path(self.provider_type, destination_dir, entry.name)
        monitor = TransferMonitor(self.provider_type, entry.name, entry.size, progress, cancel_event)
        try:
            monitor.check_cancelled()
            metadata, response = self.dbx.files_download(entry.id)
            try:
                monitor.total = metadata.size
                with partial_file(target) as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        monitor.check_cancelled()
                        f.write(chunk)
                        monitor.advance(len(chunk))
            finally:
                response.close()
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to download file {entry.id}") from e
        monitor.finish()
        logger.info(f"Downloaded Dropbox file {entry.id} to {target}")
        return target
