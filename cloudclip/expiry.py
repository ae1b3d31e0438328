"""Expiry sweep over the entry store, cascading to the password store"""

import logging
from typing import Dict, List, Optional

from .storage import PasswordStore, RecordStore
from .timeservice import HOUR_MS, TimeService

logger = logging.getLogger("cloudclip.expiry")


class ExpiryReconciler:
    """
    Removes expired entries and the password hashes that belong to them.

    Swept ids are remembered for `swept_memory_hours` so a lookup can still
    answer "expired" after another caller (the cleanup thread, /api/cleanup)
    did the sweeping.
    """

    def __init__(self, records: RecordStore, passwords: PasswordStore,
                 time_service: TimeService, request_grace_hours: float = 1,
                 swept_memory_hours: float = 1):
        self.records = records
        self.passwords = passwords
        self.time = time_service
        self.request_grace_ms = int(request_grace_hours * HOUR_MS)
        self.swept_memory_ms = int(swept_memory_hours * HOUR_MS)
        self._swept: Dict[str, int] = {}

    def sweep(self, now: Optional[int] = None, grace_ms: int = 0) -> List[str]:
        """
        Delete every entry with expiresAt < now - grace_ms.

        The entry store and the password store are each written at most once,
        and both locks are held for the whole pass.
        Returns the deleted ids; an empty list means nothing was written.
        """
        now = self.time.now() if now is None else now
        cutoff = now - grace_ms

        with self.records.lock, self.passwords.lock:
            entries = self.records.get_all()
            expired = [entry_id for entry_id, entry in entries.items() if entry.expires_at < cutoff]
            if not expired:
                return []

            for entry_id in expired:
                entry = entries.pop(entry_id)
                hours_since = (now - entry.expires_at) / HOUR_MS
                logger.info(
                    f"Sweeping expired entry: ID={entry_id}, expired at "
                    f"{self.time.format(entry.expires_at)} ({hours_since:.2f}h ago)"
                )

            self.records.save_all(entries)
            removed_hashes = self.passwords.delete_many(expired)

        self._remember(expired, now)
        logger.info(
            f"Sweep removed {len(expired)} entries and {removed_hashes} password hashes "
            f"(grace {grace_ms / HOUR_MS:.2f}h)"
        )
        return expired

    def sweep_for_request(self, now: Optional[int] = None) -> List[str]:
        """Strict pass followed by the grace-window pass run on every request"""
        now = self.time.now() if now is None else now
        deleted = self.sweep(now)
        deleted += self.sweep(now, grace_ms=self.request_grace_ms)
        return deleted

    # ------------------------------------------------------------------
    # Recently swept ids
    # ------------------------------------------------------------------

    def _remember(self, entry_ids: List[str], now: int) -> None:
        horizon = now - self.swept_memory_ms
        swept = {k: v for k, v in self._swept.items() if v >= horizon}
        swept.update((entry_id, now) for entry_id in entry_ids)
        self._swept = swept

    def was_swept(self, entry_id: str, now: Optional[int] = None) -> bool:
        """Whether entry_id was removed by a sweep within the memory window"""
        now = self.time.now() if now is None else now
        swept_at = self._swept.get(entry_id)
        return swept_at is not None and now - swept_at <= self.swept_memory_ms

    def forget(self, entry_id: str) -> None:
        """Drop the swept marker once the id is written or deleted explicitly"""
        self._swept.pop(entry_id, None)
