"""
Remote file model for the wallet_backup package.

A FileEntry describes one object (file or folder) in a provider's store and
can be encoded to a compact JSON string so the application can remember a
chosen remote folder or backup file across restarts.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import DecodeError

DRIVE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Keys of the persisted encoding. "directory" predates the Python model and must not change.
ID = "id"
NAME = "name"
SIZE = "size"
DIRECTORY = "directory"
PARENT_ID = "parent_id"
PROVIDER = "provider"
ACCOUNT = "account"
MODIFIED = "modified"


@dataclass(frozen=True)
class FileEntry:
    """One remote file or folder.

    Equality and hashing only look at (provider, account, id): a renamed
    object is still the same entry.
    """
    id: str
    name: str = field(default="", compare=False)
    size: int = field(default=0, compare=False)
    is_directory: bool = field(default=False, compare=False)
    parent_id: Optional[str] = field(default=None, compare=False)
    provider: Optional[str] = None
    account: Optional[str] = None
    modified: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if self.is_directory and self.size:
            object.__setattr__(self, "size", 0)

    @property
    def extension(self) -> Optional[str]:
        """The name's suffix starting at the last '.', or None."""
        index = self.name.rfind(".")
        return self.name[index:] if index >= 0 else None

    @classmethod
    def from_drive(cls, drive_file: Dict[str, Any], provider: Optional[str] = "google") -> 'FileEntry':
        """Create from a Drive v3 `files` resource."""
        parents = drive_file.get("parents") or []
        return cls(
            id=drive_file["id"],
            name=drive_file.get("name", ""),
            # Drive omits size for folders and native Google documents
            size=int(drive_file.get("size") or 0),
            is_directory=drive_file.get("mimeType") == DRIVE_FOLDER_MIME_TYPE,
            parent_id=parents[0] if parents else None,
            provider=provider,
            modified=drive_file.get("modifiedTime"),
        )

    @classmethod
    def from_dropbox(cls, metadata, parent_id: Optional[str] = None,
                     provider: Optional[str] = "dropbox") -> 'FileEntry':
        """Create from a Dropbox FileMetadata or FolderMetadata."""
        from dropbox.files import FolderMetadata

        is_directory = isinstance(metadata, FolderMetadata)
        modified = None
        if not is_directory and getattr(metadata, "server_modified", None):
            modified = metadata.server_modified.isoformat()
        return cls(
            id=metadata.id,
            name=metadata.name,
            size=0 if is_directory else int(getattr(metadata, "size", 0) or 0),
            is_directory=is_directory,
            parent_id=parent_id,
            provider=provider,
            modified=modified,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            ID: self.id,
            NAME: self.name,
            SIZE: self.size,
            DIRECTORY: self.is_directory,
        }
        for key, value in ((PARENT_ID, self.parent_id), (PROVIDER, self.provider),
                           (ACCOUNT, self.account), (MODIFIED, self.modified)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileEntry':
        """Create from dictionary after deserialization."""
        if not isinstance(data, dict):
            raise DecodeError(f"Expected an object, got {type(data).__name__}")
        if not isinstance(data.get(ID), str) or not data[ID]:
            raise DecodeError(f"Missing or invalid '{ID}' field")
        if not isinstance(data.get(DIRECTORY), bool):
            raise DecodeError(f"Missing or invalid '{DIRECTORY}' field")
        try:
            size = int(data.get(SIZE) or 0)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Invalid '{SIZE}' field: {data.get(SIZE)!r}", original_error=e) from e
        if size < 0:
            raise DecodeError(f"Invalid '{SIZE}' field: {size}")
        for key in (NAME, PARENT_ID, PROVIDER, ACCOUNT, MODIFIED):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise DecodeError(f"Invalid '{key}' field: {data[key]!r}")
        return cls(
            id=data[ID],
            name=data.get(NAME) or "",
            size=size,
            is_directory=data[DIRECTORY],
            parent_id=data.get(PARENT_ID),
            provider=data.get(PROVIDER),
            account=data.get(ACCOUNT),
            modified=data.get(MODIFIED),
        )

    def encode(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def decode(cls, encoded: str) -> 'FileEntry':
        try:
            data = json.loads(encoded)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Cannot decode file from string: {e}", original_error=e) from e
        return cls.from_dict(data)
