"""File-backed allow-list storing entries as a JSON array."""

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from access.models import AllowListEntry

logger = logging.getLogger(__name__)

_FILE_PERMISSIONS = 0o644


class FileAllowListStore:
    """Allow-list persisted in a whitelist.json style file.

    The whole list lives in memory keyed by lowercase UUID and is written back
    after every mutation. An asyncio.Lock serializes mutations within this
    process; the file is not safe to share between running instances.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._entries: dict[str, AllowListEntry] = {}
        self._lock = asyncio.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    async def load(self) -> None:
        """Load entries from the file, creating an empty file when it does not exist.

        Raises OSError when an existing file cannot be read or parsed, rather
        than starting empty and later overwriting it.
        """
        async with self._lock:
            if not self._file_path.exists():
                logger.info("allow-list file not found, creating empty list at %s", self._file_path)
                self._entries = {}
                self._save_to_file()
                return
            self._entries = self._load_from_file()
            logger.info("loaded %d allow-list entries from %s", len(self._entries), self._file_path)

    def _load_from_file(self) -> dict[str, AllowListEntry]:
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            msg = f"Failed to load allow-list from {self._file_path}"
            raise OSError(msg) from exc

        if not isinstance(data, list):
            msg = f"Expected JSON array at root in {self._file_path}"
            raise OSError(msg)

        try:
            entries = [AllowListEntry.model_validate(item) for item in data]
        except ValidationError as exc:
            msg = f"Failed to parse allow-list entries from {self._file_path}"
            raise OSError(msg) from exc
        return {entry.uuid.lower(): entry for entry in entries}

    def _save_to_file(self) -> None:
        """Atomically replace the file so readers never see a partial write."""
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        data = [entry.model_dump() for entry in sorted(self._entries.values(), key=lambda e: e.name.lower())]
        content = json.dumps(data, indent=2).encode("utf-8")

        fd, tmp_path = tempfile.mkstemp(
            dir=self._file_path.parent,
            prefix=".whitelist_",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fchmod(f.fileno(), _FILE_PERMISSIONS)
            Path(tmp_path).replace(self._file_path)
        except BaseException:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

    def contains(self, uuid: str) -> bool:
        return uuid.lower() in self._entries

    def find_by_name(self, name: str) -> AllowListEntry | None:
        lower = name.lower()
        return next((e for e in self._entries.values() if e.name.lower() == lower), None)

    def list_entries(self) -> list[AllowListEntry]:
        return sorted(self._entries.values(), key=lambda e: e.name.lower())

    async def add(self, entry: AllowListEntry) -> None:
        """Add or replace an entry. Rolls back the in-memory change if the write fails."""
        key = entry.uuid.lower()
        async with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = entry
            try:
                self._save_to_file()
            except OSError:
                if previous is None:
                    del self._entries[key]
                else:
                    self._entries[key] = previous
                raise

    async def remove(self, uuid: str) -> bool:
        """Remove an entry by UUID. Returns False if it was not listed."""
        key = uuid.lower()
        async with self._lock:
            previous = self._entries.pop(key, None)
            if previous is None:
                return False
            try:
                self._save_to_file()
            except OSError:
                self._entries[key] = previous
                raise
            return True
