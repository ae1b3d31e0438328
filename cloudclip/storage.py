"""
JSON-file persistence for entries and password hashes.

Each collection is one JSON object written wholesale on every mutation. Writes
go to a temp file that atomically replaces the target, then the file is read
back and compared with what was written. Reads never raise: a missing, empty
or corrupt file yields an empty collection, and a corrupt file is rewritten as
an empty object.
"""

import hashlib
import hmac
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import ValidationError

from .models import Entry

logger = logging.getLogger("cloudclip.storage")

ENTRIES_FILE = "clipboards.json"
PASSWORDS_FILE = "passwords.json"


class JsonFileStore:
    """
    A single JSON object persisted to one file.

    Read-modify-write sequences hold `lock`. Stores that are mutated from more
    than one thread (request handlers and the cleanup thread) must share it.
    """

    def __init__(self, path: Path, create: bool = True,
                 lock=None):
        self.path = Path(path)
        self.lock = lock if lock is not None else threading.RLock()
        if create:
            self.ensure_medium()

    def ensure_medium(self) -> None:
        """Create the data directory and an empty collection file if missing"""
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created data directory: {self.path.parent}")
            if not self.path.exists():
                self.path.write_text(json.dumps({}), encoding='utf-8')
                logger.info(f"Created store file: {self.path}")
        except OSError as e:
            logger.error(f"Failed to initialize store {self.path}: {e}")

    def load(self) -> dict:
        """Read the raw collection, healing a corrupt file"""
        try:
            if not self.path.exists():
                return {}
            data = self.path.read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"Failed to read {self.path}: {e}")
            return {}

        if not data.strip():
            return {}

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse {self.path}: {e}. Resetting to an empty collection.")
            self.save({})
            return {}

        if not isinstance(parsed, dict):
            logger.error(f"{self.path} does not hold a JSON object. Resetting to an empty collection.")
            self.save({})
            return {}

        return parsed

    def save(self, data: dict) -> bool:
        """Atomically replace the file with data and verify the write"""
        json_data = json.dumps(data, indent=2, ensure_ascii=False)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(json_data)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed to save {self.path}: {e}")
            return False
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        self._verify(json_data)
        return True

    def _verify(self, expected: str) -> None:
        """Read back what was just written; a mismatch is logged, not raised"""
        try:
            saved = self.path.read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"Verification read of {self.path} failed: {e}")
            return
        if saved != expected:
            logger.error(f"Verification failed for {self.path}: written data does not match")


class RecordStore(JsonFileStore):
    """id -> Entry persistence"""

    def __init__(self, data_dir: Path, filename: str = ENTRIES_FILE,
                 lock=None):
        super().__init__(Path(data_dir) / filename, lock=lock)

    def get_all(self) -> Dict[str, Entry]:
        entries: Dict[str, Entry] = {}
        for entry_id, row in self.load().items():
            if not isinstance(row, dict):
                logger.warning(f"Skipping malformed entry row: ID={entry_id}")
                continue
            try:
                entries[entry_id] = Entry.model_validate({"id": entry_id, **row})
            except ValidationError as e:
                logger.warning(f"Skipping invalid entry ID={entry_id}: {e.error_count()} errors")
        return entries

    def get(self, entry_id: str) -> Optional[Entry]:
        return self.get_all().get(entry_id)

    def save_all(self, entries: Dict[str, Entry]) -> bool:
        ok = self.save({entry_id: entry.to_json_dict() for entry_id, entry in entries.items()})
        if ok:
            logger.info(f"Saved entries: {len(entries)} records")
        return ok

    def put(self, entry_id: str, entry: Entry) -> bool:
        with self.lock:
            entries = self.get_all()
            entries[entry_id] = entry
            return self.save_all(entries)

    def delete(self, entry_id: str) -> bool:
        """Remove an entry; returns whether it existed"""
        with self.lock:
            entries = self.get_all()
            if entry_id not in entries:
                return False
            del entries[entry_id]
            self.save_all(entries)
            return True


class PasswordStore(JsonFileStore):
    """id -> keyed hash of the entry password"""

    def __init__(self, data_dir: Path, salt: str, filename: str = PASSWORDS_FILE,
                 lock=None):
        self.salt = salt.encode('utf-8')
        super().__init__(Path(data_dir) / filename, lock=lock)

    def hash(self, plaintext: str) -> str:
        return hmac.new(self.salt, plaintext.encode('utf-8'), hashlib.sha256).hexdigest()

    def get_all(self) -> Dict[str, str]:
        return {k: v for k, v in self.load().items() if isinstance(v, str)}

    def save_all(self, hashes: Dict[str, str]) -> bool:
        return self.save(hashes)

    def exists(self, entry_id: str) -> bool:
        return bool(self.get_all().get(entry_id))

    def set(self, entry_id: str, plaintext: str) -> bool:
        with self.lock:
            hashes = self.get_all()
            hashes[entry_id] = self.hash(plaintext)
            return self.save_all(hashes)

    def verify(self, entry_id: str, candidate: str) -> bool:
        stored = self.get_all().get(entry_id)
        if not stored:
            return False
        return hmac.compare_digest(stored, self.hash(candidate))

    def delete(self, entry_id: str) -> bool:
        """Remove a hash; returns whether it existed"""
        return self.delete_many([entry_id]) > 0

    def delete_many(self, entry_ids: Iterable[str]) -> int:
        """Remove several hashes with a single write"""
        with self.lock:
            hashes = self.get_all()
            removed = [entry_id for entry_id in entry_ids if entry_id in hashes]
            if not removed:
                return 0
            for entry_id in removed:
                del hashes[entry_id]
            self.save_all(hashes)
            return len(removed)
