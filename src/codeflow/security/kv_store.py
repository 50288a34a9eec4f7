"""
Key/value persistence substrate.

The account store persists two opaque text values per user in a namespaced,
string-keyed store. Two implementations are provided:

- MemoryStore: a dict, for tests and throwaway sessions
- JsonFileStore: a single JSON object on disk, rewritten atomically on every
  write (temporary file + os.replace) and restricted to the owner
"""

import os
import json
import logging
import platform
import tempfile

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Synchronous, durable string -> string store."""

    def get(self, key):
        """Return the value for key, or None if absent."""
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def delete(self, key):
        """Remove key; a missing key is not an error."""
        raise NotImplementedError

    def keys(self):
        """Return all keys currently stored."""
        raise NotImplementedError

    def apply(self, updates=None, deletes=()):
        """
        Set and delete several keys as one operation.

        Updates are written before deletes. Implementations that can commit
        both in one write override this.
        """
        for key, value in (updates or {}).items():
            self.set(key, value)
        for key in deletes:
            self.delete(key)

    def __contains__(self, key):
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-memory store backed by a dict."""

    def __init__(self, initial=None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        if not isinstance(value, str):
            raise TypeError("values must be text")
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """
    File-backed store holding every key in one JSON object.

    The file is re-read on every operation so that separate processes see
    each other's completed writes; concurrent writers are not coordinated
    and the last write wins.
    """

    def __init__(self, path):
        """
        Args:
            path (str): Location of the JSON file; its directory is created if needed
        """
        self.path = os.path.abspath(path)
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def _read(self):
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            content = f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    def _write(self, data):
        directory = os.path.dirname(self.path) or '.'
        fd, tmp_path = tempfile.mkstemp(prefix='.store-', suffix='.tmp', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            if platform.system() != "Windows":
                os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Wrote {len(data)} key(s) to {self.path}")

    def get(self, key):
        return self._read().get(key)

    def set(self, key, value):
        if not isinstance(value, str):
            raise TypeError("values must be text")
        data = self._read()
        data[key] = value
        self._write(data)

    def apply(self, updates=None, deletes=()):
        """Set and delete several keys in a single file replacement."""
        updates = updates or {}
        for value in updates.values():
            if not isinstance(value, str):
                raise TypeError("values must be text")
        data = self._read()
        data.update(updates)
        for key in deletes:
            data.pop(key, None)
        self._write(data)

    def delete(self, key):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def keys(self):
        return list(self._read())
