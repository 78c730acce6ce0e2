import json
import logging
import os
import threading
from typing import List, Optional, Set

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from ..auth.session import Session
from ..models.file_entry import DRIVE_FOLDER_MIME_TYPE, FileEntry
from .base import (
    FatalError,
    ProgressCallback,
    RecoverableError,
    StorageProvider,
    StorageProviderError,
)
from .transfer import TransferMonitor, destination_path, local_file_size, partial_file

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive.file"]

FILE_FIELDS = "id, name, mimeType, size, modifiedTime, parents"
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS}, trashed)"

# Resumable upload chunks must be a multiple of 256 KiB
CHUNK_ALIGNMENT = 256 * 1024
DEFAULT_CHUNK_SIZE = 4 * CHUNK_ALIGNMENT

RECOVERABLE_REASONS = {
    "rateLimitExceeded",
    "userRateLimitExceeded",
    "sharingRateLimitExceeded",
    "backendError",
    "internalError",
}


def _http_error_reasons(error: HttpError) -> Set[str]:
    """Collects the `reason` codes Drive put into an error response."""
    reasons = set()
    details = getattr(error, "error_details", None)
    if isinstance(details, list):
        reasons.update(d.get("reason") for d in details if isinstance(d, dict) and d.get("reason"))
    if not reasons and error.content:
        try:
            body = json.loads(error.content.decode("utf-8"))
            for item in body.get("error", {}).get("errors", []):
                if item.get("reason"):
                    reasons.add(item["reason"])
        except (ValueError, AttributeError):
            pass
    return reasons


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveStorage(StorageProvider):
    """Storage provider implementation for Google Drive (REST API v3)."""

    provider_type = "google"
    required_scopes = frozenset(SCOPES)

    def __init__(self, session: Session, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 drive_service: Optional[Resource] = None):
        """Binds the Drive client to the session's credentials. Makes no network calls."""
        self.session = session
        self.chunk_size = max(CHUNK_ALIGNMENT, (chunk_size // CHUNK_ALIGNMENT) * CHUNK_ALIGNMENT)
        self.drive_service = drive_service or self._authenticate()

    def _authenticate(self) -> Resource:
        """Builds the Drive service from the session's OAuth credentials."""
        try:
            return build("drive", "v3", credentials=self.session.credentials,
                         cache_discovery=False)
        except Exception as e:
            raise FatalError(
                self.provider_type,
                f"Failed to initialize Google Drive service: {str(e)}",
                original_error=e
            ) from e

    def _translate_error(self, error: Exception, action: str) -> StorageProviderError:
        """Maps a Drive/transport exception onto the shared error taxonomy."""
        if isinstance(error, HttpError):
            status = int(error.resp.status)
            reasons = _http_error_reasons(error)
            message = f"{action}: HTTP {status} {', '.join(sorted(reasons)) or error.reason}"
            if status == 429 or status >= 500 or (status == 403 and reasons & RECOVERABLE_REASONS):
                return RecoverableError(self.provider_type, message, original_error=error)
            return FatalError(self.provider_type, message, original_error=error)
        if isinstance(error, RefreshError):
            return FatalError(self.provider_type, f"{action}: credentials rejected: {error}",
                              original_error=error)
        if isinstance(error, (TransportError, httplib2.HttpLib2Error, OSError)):
            return RecoverableError(self.provider_type, f"{action}: {error}", original_error=error)
        return FatalError(self.provider_type, f"{action}: unexpected error: {error}",
                          original_error=error)

    def _list(self, query: str) -> List[FileEntry]:
        entries = []
        page_token = None
        while True:
            results = self.drive_service.files().list(
                q=query,
                spaces="drive",
                fields=LIST_FIELDS,
                pageToken=page_token,
            ).execute()
            for drive_file in results.get("files", []):
                if drive_file.get("trashed"):
                    continue
                entries.append(FileEntry.from_drive(drive_file))
            page_token = results.get("nextPageToken")
            if not page_token:
                return entries

    def list_folder(self, parent_id: str) -> List[FileEntry]:
        """Lists the non-trashed children of a Drive folder."""
        try:
            entries = self._list(f"'{_escape_query_value(parent_id)}' in parents and trashed=false")
            logger.debug(f"Listed {len(entries)} entries in Drive folder {parent_id}")
            return entries
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to list folder {parent_id}") from e

    def find_folders(self, name: str, parent_id: Optional[str] = None) -> List[FileEntry]:
        query = (
            f"name='{_escape_query_value(name)}' and mimeType='{DRIVE_FOLDER_MIME_TYPE}'"
            f" and trashed=false and '{_escape_query_value(parent_id or 'root')}' in parents"
        )
        try:
            return self._list(query)
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to look up folder '{name}'") from e

    def create_folder(self, parent_id: Optional[str], name: str) -> FileEntry:
        """Creates a folder; with no parent it lands in the top-level "My Drive"."""
        metadata = {"name": name, "mimeType": DRIVE_FOLDER_MIME_TYPE}
        if parent_id:
            metadata["parents"] = [parent_id]
        try:
            created = self.drive_service.files().create(body=metadata, fields=FILE_FIELDS).execute()
        except Exception as e:
            raise self._translate_error(e, f"Failed to create folder '{name}'") from e
        if not created or not created.get("id"):
            raise FatalError(self.provider_type, f"Failed to create folder '{name}': API returned no id")
        logger.info(f"Created Drive folder '{name}' ({created['id']})")
        return FileEntry.from_drive(created)

    def upload_file(self, parent_id: str, local_path: str,
                    progress: Optional[ProgressCallback] = None,
                    cancel_event: Optional[threading.Event] = None) -> FileEntry:
        """Uploads a local file into a Drive folder through a resumable session."""
        total = local_file_size(self.provider_type, local_path)
        name = os.path.basename(local_path)
        monitor = TransferMonitor(self.provider_type, name, total, progress, cancel_event)
        metadata = {"name": name, "parents": [parent_id]}
        try:
            with open(local_path, "rb") as f:
                media = MediaIoBaseUpload(f, mimetype="application/octet-stream",
                                          chunksize=self.chunk_size, resumable=True)
                request = self.drive_service.files().create(
                    body=metadata,
                    media_body=media,
                    fields=FILE_FIELDS
                )
                response = None
                while response is None:
                    monitor.check_cancelled()
                    status, response = request.next_chunk()
                    if status is not None:
                        monitor.update(status.resumable_progress)
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to upload file '{name}'") from e
        monitor.finish()
        logger.info(f"Uploaded '{name}' ({total} bytes) to Drive folder {parent_id}")
        return FileEntry.from_drive(response)

    def download_file(self, entry: FileEntry, destination_dir: str,
                      progress: Optional[ProgressCallback] = None,
                      cancel_event: Optional[threading.Event] = None) -> str:
        """Downloads a Drive file's content into destination_dir."""
        target = destination_path(self.provider_type, destination_dir, entry.name)
        monitor = TransferMonitor(self.provider_type, entry.name, entry.size, progress, cancel_event)
        try:
            request = self.drive_service.files().get_media(fileId=entry.id)
            with partial_file(target) as f:
                downloader = MediaIoBaseDownload(f, request, chunksize=self.chunk_size)
                done = False
                while not done:
                    monitor.check_cancelled()
                    status, done = downloader.next_chunk()
                    if status.total_size:
                        monitor.total = status.total_size
                    monitor.update(status.resumable_progress)
        except StorageProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, f"Failed to download file {entry.id}") from e
        monitor.finish()
        logger.info(f"Downloaded Drive file {entry.id} to {target}")
        return target
