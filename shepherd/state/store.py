"""
Key-value storage abstraction.

Separates persistence from domain logic for testability. The engine
stores opaque bytes under string keys; encoding is StateManager's job.
"""

import os
from pathlib import Path
from typing import Protocol, runtime_checkable


STATE_KEY = "soul_shepherd_state"


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Abstract byte storage.

    Implementations:
    - JsonFileStore: File-based persistence (production)
    - MemoryStore: In-memory storage (testing)

    set() raises OSError on failure. Callers own retry policy.
    """

    def get(self, key: str) -> bytes | None:
        """Read a value. Returns None if absent."""
        ...

    def set(self, key: str, data: bytes) -> None:
        """Write a value durably."""
        ...

    def delete(self, key: str) -> bool:
        """Delete a value. Returns True if deleted."""
        ...

    def keys(self) -> list[str]:
        """List stored keys."""
        ...


class JsonFileStore:
    """
    File-based storage, one JSON file per key.

    Features:
    - Automatic backup of the previous value on overwrite
    - Atomic replace so a crash mid-write never leaves a torn file
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path | str = "shepherd_data"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, data: bytes) -> None:
        """Write with backup, via temp file and os.replace."""
        path = self._path(key)

        # Backup previous save
        if path.exists():
            backup = path.with_suffix(self.SUFFIX + ".bak")
            backup.write_bytes(path.read_bytes())

        tmp = path.with_suffix(self.SUFFIX + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self) -> list[str]:
        """Stored keys, skipping dotfiles (config) and backups."""
        return sorted(
            f.name[: -len(self.SUFFIX)]
            for f in self.directory.glob(f"*{self.SUFFIX}")
            if not f.name.startswith(".")
        )


class MemoryStore:
    """
    In-memory storage for testing.

    No file I/O - all data lives in memory.
    """

    def __init__(self):
        self.data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, data: bytes) -> None:
        self.data[key] = bytes(data)

    def delete(self, key: str) -> bool:
        if key in self.data:
            del self.data[key]
            return True
        return False

    def keys(self) -> list[str]:
        return sorted(self.data)

    def clear(self) -> None:
        """Clear all values (test utility)."""
        self.data.clear()
