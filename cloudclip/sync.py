"""Dual-write (local + server) and reconciled reads of entries"""

import logging
from dataclasses import dataclass
from typing import Optional

from . import codec
from .client import ClipboardClient
from .local_cache import ClientCache
from .models import Entry
from .reconcile import is_remote, resolve

logger = logging.getLogger("cloudclip.sync")

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"


@dataclass(frozen=True)
class LoadResult:
    entry: Optional[Entry] = None
    expired: bool = False
    source: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.entry is not None


@dataclass(frozen=True)
class WriteResult:
    """Which side of a dual write succeeded; the caller decides what is acceptable"""

    local: bool
    remote: bool
    entry: Optional[Entry] = None

    @property
    def ok(self) -> bool:
        return self.local or self.remote


class ClipboardSync:
    def __init__(self, cache: ClientCache, client: ClipboardClient):
        self.cache = cache
        self.client = client

    def load(self, entry_id: str) -> LoadResult:
        """Fetch the authoritative entry, mirroring a server win locally"""
        local = self.cache.get_entry(entry_id)
        lookup = self.client.get_entry(entry_id)

        if lookup.expired:
            logger.info(f"ID={entry_id} expired on the server, dropping the local copy")
            self.cache.delete_entry(entry_id)
            self.cache.remove_from_history(entry_id)
            return LoadResult(expired=True)

        if not lookup.ok:
            logger.warning(f"Server unreachable for ID={entry_id}, using the local copy")

        resolved = resolve(local, lookup.entry)
        if resolved is None:
            return LoadResult()

        if is_remote(resolved, lookup.entry):
            self.cache.put_entry(resolved)
            return LoadResult(entry=resolved, source=SOURCE_REMOTE)
        return LoadResult(entry=resolved, source=SOURCE_LOCAL)

    def save(self, entry_id: str, content: str, is_protected: bool = False,
             expiration_hours: float = 24, secret: Optional[str] = None) -> WriteResult:
        """Write locally, then to the server; content is encoded when protected"""
        if is_protected:
            if not secret:
                raise ValueError("A secret is required for protected entries")
            content = codec.encode(content, secret)

        existing = self.cache.get_entry(entry_id)
        if existing is not None:
            local_entry = self.cache.update_content(entry_id, content, is_protected=is_protected)
        else:
            local_entry = self.cache.create_entry(entry_id, content, is_protected, expiration_hours)
        local_ok = local_entry is not None

        remote_entry = self.client.save_entry(
            entry_id, content, is_protected=is_protected, expiration_hours=expiration_hours
        )
        remote_ok = remote_entry is not None

        if remote_ok and is_protected:
            remote_ok = self.client.save_secret(entry_id, secret)
        if is_protected and local_ok:
            self.cache.save_secret(entry_id, secret)
        elif existing is not None and existing.is_protected:
            self.cache.remove_secret(entry_id)

        if remote_entry is not None:
            # Server timestamps are authoritative once the write landed there
            local_ok = self.cache.put_entry(remote_entry) or local_ok
            local_entry = remote_entry

        if not remote_ok:
            logger.warning(f"Saved ID={entry_id} locally only")
        return WriteResult(local=local_ok, remote=remote_ok, entry=local_entry)

    def delete(self, entry_id: str) -> WriteResult:
        self.cache.delete_entry(entry_id)
        self.cache.remove_from_history(entry_id)
        remote_ok = self.client.delete_entry(entry_id)
        return WriteResult(local=self.cache.get_entry(entry_id) is None, remote=remote_ok)
