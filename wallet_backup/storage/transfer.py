"""Helpers shared by provider transfers: progress reporting, cancellation and partial files."""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional

from ..errors import InvalidArgumentError, TransferCancelledError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


class TransferMonitor:
    """Tracks one transfer: forwards non-decreasing progress and checks for cancellation."""

    def __init__(self, provider_type: str, name: str, total: int,
                 progress=None, cancel_event: Optional[threading.Event] = None):
        self.provider_type = provider_type
        self.name = name
        self.total = total
        self.progress = progress
        self.cancel_event = cancel_event
        self.done = 0
        self._reported = False

    def check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"Transfer of '{self.name}' cancelled at {self.done}/{self.total} bytes")
            raise TransferCancelledError(self.provider_type, f"Transfer of '{self.name}' was cancelled")

    def _report(self):
        self._reported = True
        if self.progress is not None:
            self.progress(self.done, self.total)

    def update(self, done: int):
        """Report `done` bytes transferred. Values lower than the last report are ignored."""
        if done < self.done or (done == self.done and self._reported):
            return
        self.done = done
        self._report()

    def advance(self, count: int):
        self.update(self.done + count)

    def finish(self):
        """Report the terminal value, unless the last chunk already did."""
        if self.done < self.total or not self._reported:
            self.done = max(self.done, self.total)
            self._report()


def local_file_size(provider_type: str, local_path: str) -> int:
    if not os.path.isfile(local_path):
        raise InvalidArgumentError(provider_type, f"Local file not found: {local_path}")
    return os.path.getsize(local_path)


def destination_path(provider_type: str, destination_dir: str, name: str) -> str:
    if not os.path.isdir(destination_dir):
        raise InvalidArgumentError(provider_type, f"Destination is not a directory: {destination_dir}")
    if not name or os.path.basename(name) != name or name in (".", ".."):
        raise InvalidArgumentError(provider_type, f"Remote name is not a valid local file name: {name!r}")
    return os.path.join(destination_dir, name)


@contextmanager
def partial_file(target_path: str) -> Iterator[BinaryIO]:
    """
    Opens a hidden partial file next to `target_path` for writing.

    Each call gets its own `.<name>.<random>.part` file, so concurrent
    downloads of the same name never share one. The partial file is renamed
    to `target_path` only when the block exits normally; on any exception it
    is closed and removed before the exception propagates.
    """
    directory, name = os.path.split(target_path)
    fd, temp_path = tempfile.mkstemp(dir=directory or ".", prefix=f".{name}.", suffix=PARTIAL_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
        os.replace(temp_path, target_path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
            logger.debug(f"Removed partial file {temp_path}")
