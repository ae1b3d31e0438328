"""
Device-local mirror of entries, secrets, visit history and failed unlocks.

Everything lives in one JSON document (local.json). Each entry is also copied
to backups/<id>.json so that it survives the primary document being reset
after corruption. Reads look in the primary document first and fall back to
the backup file; deletes always remove both.

Secrets are kept here in plaintext so a device can reopen an entry it has
already unlocked. The failed-attempt limiter is advisory only: it runs on the
client and anyone can clear it.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote

from pydantic import ValidationError

from .models import (
    HISTORY_LIMIT,
    Entry,
    HistoryItem,
    make_summary,
    make_title,
)
from .storage import JsonFileStore
from .timeservice import MINUTE_MS, SECOND_MS, TimeService

logger = logging.getLogger("cloudclip.local")

LOCAL_FILE = "local.json"
BACKUP_DIR = "backups"

MAX_FAILED_ATTEMPTS = 10
ATTEMPT_WINDOW_MS = 60 * SECOND_MS
BLOCK_DURATION_MS = 60 * SECOND_MS


@dataclass(frozen=True)
class BlockStatus:
    blocked: bool
    remaining_seconds: int = 0
    attempts: int = 0

    @property
    def remaining_attempts(self) -> int:
        return max(0, MAX_FAILED_ATTEMPTS - self.attempts)


class ClientCache:
    """Local, durable copy of what this device has created or viewed"""

    def __init__(self, cache_dir: Path, time_service: TimeService):
        self.cache_dir = Path(cache_dir)
        self.backup_dir = self.cache_dir / BACKUP_DIR
        self.time = time_service
        self.store = JsonFileStore(self.cache_dir / LOCAL_FILE)

    # ------------------------------------------------------------------
    # Document access
    # ------------------------------------------------------------------

    def _load(self) -> dict:
        doc = self.store.load()
        for section in ("entries", "secrets", "failedAuth"):
            if not isinstance(doc.get(section), dict):
                doc[section] = {}
        if not isinstance(doc.get("history"), list):
            doc["history"] = []
        return doc

    def _save(self, doc: dict) -> bool:
        return self.store.save(doc)

    def _backup_store(self, entry_id: str) -> JsonFileStore:
        return JsonFileStore(self.backup_dir / f"{quote(entry_id, safe='')}.json", create=False)

    def _read_backup(self, entry_id: str) -> Optional[Entry]:
        backup = self._backup_store(entry_id)
        if not backup.path.exists():
            return None
        row = backup.load()
        if not row:
            return None
        try:
            return Entry.model_validate(row)
        except ValidationError as e:
            logger.warning(f"Discarding invalid backup for ID={entry_id}: {e.error_count()} errors")
            return None

    def _remove_backup(self, entry_id: str) -> bool:
        path = self._backup_store(entry_id).path
        try:
            if path.exists():
                path.unlink()
                return True
        except OSError as e:
            logger.error(f"Failed to remove backup for ID={entry_id}: {e}")
        return False

    @staticmethod
    def _parse(entry_id: str, row) -> Optional[Entry]:
        if not isinstance(row, dict):
            return None
        try:
            return Entry.model_validate({"id": entry_id, **row})
        except ValidationError:
            logger.warning(f"Skipping invalid local entry ID={entry_id}")
            return None

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: str) -> Optional[Entry]:
        """Return a live entry, deleting it first if it has expired"""
        doc = self._load()
        entry = self._parse(entry_id, doc["entries"].get(entry_id))
        if entry is None:
            entry = self._read_backup(entry_id)
            if entry is not None:
                logger.info(f"Restored ID={entry_id} from its backup copy")

        if entry is None:
            return None

        if entry.is_expired(self.time.now()):
            logger.info(f"Local entry ID={entry_id} has expired, removing it")
            self.delete_entry(entry_id)
            return None

        return entry

    def put_entry(self, entry: Entry) -> bool:
        doc = self._load()
        doc["entries"][entry.id] = entry.to_json_dict()
        ok = self._save(doc)
        if not self._backup_store(entry.id).save(entry.to_json_dict()):
            logger.warning(f"Failed to write backup copy for ID={entry.id}")
        return ok

    def create_entry(self, entry_id: str, content: str = "", is_protected: bool = False,
                     expiration_hours: float = 24) -> Entry:
        now = self.time.now()
        entry = Entry(
            id=entry_id,
            content=content,
            is_protected=is_protected,
            created_at=now,
            expires_at=now + TimeService.hours_to_ms(expiration_hours),
            last_modified=now,
        )
        self.put_entry(entry)
        logger.info(f"Created local entry ID={entry_id}, expires {self.time.format(entry.expires_at)}")
        return entry

    def update_content(self, entry_id: str, content: str,
                       is_protected: Optional[bool] = None) -> Optional[Entry]:
        """
        Replace the content of a live entry, keeping its creation and expiry.

        Pass is_protected whenever the content changes between plaintext and
        ciphertext; None keeps the current flag.
        """
        entry = self.get_entry(entry_id)
        if entry is None:
            logger.error(f"Cannot update ID={entry_id}: no live local entry")
            return None
        changes = {"content": content, "last_modified": self.time.now()}
        if is_protected is not None:
            changes["is_protected"] = is_protected
        updated = entry.model_copy(update=changes)
        if not self.put_entry(updated):
            return None
        return updated

    def delete_entry(self, entry_id: str) -> bool:
        """Delete the entry, its backup copy and its cached secret"""
        doc = self._load()
        existed = doc["entries"].pop(entry_id, None) is not None
        doc["secrets"].pop(entry_id, None)
        self._save(doc)
        existed = self._remove_backup(entry_id) or existed
        return existed

    def all_entries(self) -> Dict[str, Entry]:
        self.sweep_expired()
        doc = self._load()
        entries = {}
        for entry_id, row in doc["entries"].items():
            entry = self._parse(entry_id, row)
            if entry is not None:
                entries[entry_id] = entry
        return entries

    def sweep_expired(self) -> int:
        """Delete expired entries, their backups and secrets; returns the count"""
        now = self.time.now()
        doc = self._load()
        expired = set()

        for entry_id, row in list(doc["entries"].items()):
            entry = self._parse(entry_id, row)
            if entry is not None and entry.is_expired(now):
                expired.add(entry_id)

        if self.backup_dir.exists():
            for path in self.backup_dir.glob("*.json"):
                row = JsonFileStore(path, create=False).load()
                entry = self._parse(str(row.get("id", "")), row)
                if entry is not None and entry.is_expired(now):
                    expired.add(entry.id)

        if not expired:
            return 0

        for entry_id in expired:
            doc["entries"].pop(entry_id, None)
            doc["secrets"].pop(entry_id, None)
            self._remove_backup(entry_id)
        self._save(doc)
        logger.info(f"Local sweep removed {len(expired)} expired entries")
        return len(expired)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def save_secret(self, entry_id: str, secret: str) -> bool:
        if not entry_id or not secret:
            logger.error("Refusing to cache an empty id or secret")
            return False
        doc = self._load()
        doc["secrets"][entry_id] = secret
        if not self._save(doc):
            return False
        return self.get_secret(entry_id) == secret

    def get_secret(self, entry_id: str) -> Optional[str]:
        return self._load()["secrets"].get(entry_id) or None

    def remove_secret(self, entry_id: str) -> None:
        doc = self._load()
        if doc["secrets"].pop(entry_id, None) is not None:
            self._save(doc)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_to_history(self, entry: Entry, plaintext: Optional[str] = None) -> None:
        """Record a visit; protected entries are summarized only from plaintext"""
        if plaintext is None:
            plaintext = "" if entry.is_protected else entry.content

        item = HistoryItem(
            id=entry.id,
            title=make_title(entry.id, plaintext),
            content=make_summary(plaintext),
            is_protected=entry.is_protected,
            visited_at=self.time.now(),
            created_at=entry.created_at,
            expires_at=entry.expires_at,
        )

        doc = self._load()
        history = self._live_history(doc)
        for i, existing in enumerate(history):
            if existing.id == entry.id:
                history[i] = item
                break
        else:
            history.insert(0, item)
            if len(history) > HISTORY_LIMIT:
                history.pop()

        doc["history"] = [h.to_json_dict() for h in history]
        self._save(doc)

    def get_history(self) -> List[HistoryItem]:
        """Live history items, most recently visited first"""
        doc = self._load()
        history = self._live_history(doc)
        if len(history) < len(doc["history"]):
            purged = len(doc["history"]) - len(history)
            doc["history"] = [h.to_json_dict() for h in history]
            self._save(doc)
            logger.info(f"Purged {purged} expired history items")
        return sorted(history, key=lambda h: h.visited_at, reverse=True)

    def _live_history(self, doc: dict) -> List[HistoryItem]:
        now = self.time.now()
        items = []
        for row in doc["history"]:
            try:
                item = HistoryItem.model_validate(row)
            except ValidationError:
                continue
            if item.expires_at > now:
                items.append(item)
        return items

    def remove_from_history(self, entry_id: str) -> None:
        doc = self._load()
        history = self._live_history(doc)
        remaining = [h for h in history if h.id != entry_id]
        if len(remaining) < len(history):
            doc["history"] = [h.to_json_dict() for h in remaining]
            self._save(doc)

    def clear_history(self) -> None:
        doc = self._load()
        doc["history"] = []
        self._save(doc)

    # ------------------------------------------------------------------
    # Failed unlock attempts
    # ------------------------------------------------------------------

    def is_blocked(self, entry_id: str) -> BlockStatus:
        doc = self._load()
        status, changed = self._check(doc, entry_id, self.time.now())
        if changed:
            self._save(doc)
        return status

    def record_failed_auth(self, entry_id: str) -> BlockStatus:
        """Count a failed attempt; attempts made while blocked are ignored"""
        now = self.time.now()
        doc = self._load()
        status, _ = self._check(doc, entry_id, now)
        if status.blocked:
            return status

        state = doc["failedAuth"].setdefault(entry_id, {"buckets": {}, "blockedUntil": None})
        minute = str(now - now % MINUTE_MS)
        state["buckets"][minute] = state["buckets"].get(minute, 0) + 1
        attempts = sum(state["buckets"].values())

        if attempts >= MAX_FAILED_ATTEMPTS:
            state["blockedUntil"] = now + BLOCK_DURATION_MS
            status = BlockStatus(True, BLOCK_DURATION_MS // SECOND_MS, attempts)
            logger.warning(f"Too many failed attempts for ID={entry_id}, blocked for 60 seconds")
        else:
            status = BlockStatus(False, 0, attempts)

        self._save(doc)
        return status

    def reset_failed_auth(self, entry_id: str) -> None:
        doc = self._load()
        if doc["failedAuth"].pop(entry_id, None) is not None:
            self._save(doc)

    @staticmethod
    def _check(doc: dict, entry_id: str, now: int):
        """Evaluate and prune limiter state in place; returns (status, changed)"""
        state = doc["failedAuth"].get(entry_id)
        if not isinstance(state, dict):
            return BlockStatus(False), False

        blocked_until = state.get("blockedUntil")
        if blocked_until:
            if now < blocked_until:
                remaining = math.ceil((blocked_until - now) / SECOND_MS)
                return BlockStatus(True, remaining, sum(state.get("buckets", {}).values())), False
            # Block elapsed: start over
            del doc["failedAuth"][entry_id]
            return BlockStatus(False), True

        buckets = state.get("buckets", {})
        live = {k: v for k, v in buckets.items() if int(k) >= now - ATTEMPT_WINDOW_MS}
        changed = len(live) != len(buckets)
        if live:
            state["buckets"] = live
        else:
            del doc["failedAuth"][entry_id]
            changed = True
        return BlockStatus(False, 0, sum(live.values())), changed
