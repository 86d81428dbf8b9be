"""
Persistent IP allow-list.

The list lives in a small JSON file (``["1.2.3.4", ...]``). Every successful
``add``/``remove`` rewrites the whole file; the write goes to a temporary file
in the same directory which then replaces the original, so a crash mid-write
leaves the previous list intact.
"""

import json
import logging
import os
import tempfile
import threading

from errors import ConflictError, NotFoundError, StorageError

log = logging.getLogger(__name__)

DEFAULT_MODE = 0o644


class AllowList:
    """Set of authorized IP strings mirrored to a JSON file."""

    def __init__(self, path, entries):
        self.path = path
        self._entries = list(entries)
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path):
        """Open *path*, creating it with an empty list when absent."""
        if not os.path.exists(path):
            try:
                _write_atomic(path, [])
            except OSError as exc:
                raise StorageError(f"cannot create {path}: {exc}") from exc
            log.info("Created empty allow-list at %s", path)

        try:
            with open(path, encoding="utf-8") as f:
                entries = json.load(f)
        except OSError as exc:
            raise StorageError(f"cannot open {path}: {exc}") from exc
        except ValueError as exc:
            raise StorageError(f"{path} is not valid JSON: {exc}") from exc

        if not isinstance(entries, list) or not all(
            isinstance(e, str) for e in entries
        ):
            raise StorageError(f"{path} must contain a JSON list of strings")

        # Tolerate hand-edited files with repeated entries.
        unique = list(dict.fromkeys(entries))
        return cls(path, unique)

    def contains(self, ip):
        with self._lock:
            return ip in self._entries

    def entries(self):
        """Return a snapshot of the current entries."""
        with self._lock:
            return list(self._entries)

    def add(self, ip):
        """Append *ip* and persist. Raises ConflictError if already present."""
        with self._lock:
            if ip in self._entries:
                raise ConflictError(f"{ip} already exists in the allow-list")
            # The in-memory list keeps the entry even if the save fails.
            self._entries.append(ip)
            self._save()

    def remove(self, ip):
        """Drop *ip* and persist. Raises NotFoundError if absent."""
        with self._lock:
            try:
                index = self._entries.index(ip)
            except ValueError:
                raise NotFoundError(f"{ip} is not in the allow-list") from None
            # Order is not significant: swap with the last entry and truncate.
            self._entries[index] = self._entries[-1]
            self._entries.pop()
            self._save()

    def _save(self):
        try:
            _write_atomic(self.path, self._entries)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    def __len__(self):
        with self._lock:
            return len(self._entries)


def _write_atomic(path, entries):
    directory = os.path.dirname(os.path.abspath(path))
    try:
        mode = os.stat(path).st_mode & 0o777
    except FileNotFoundError:
        mode = DEFAULT_MODE
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".allowlist-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(entries, f)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
