"""HTTP client for the cloudclip server API"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from pydantic import ValidationError

from .cache import MISSING, ResultCache
from .models import Entry

logger = logging.getLogger("cloudclip.client")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class RemoteLookup:
    """Outcome of fetching an entry from the server"""

    entry: Optional[Entry] = None
    expired: bool = False
    ok: bool = True  # False when the server could not be reached

    @property
    def exists(self) -> bool:
        return self.entry is not None


class ClipboardClient:
    """
    Talks to the server endpoints. Network and HTTP failures are logged and
    degrade to None/False; nothing here raises to the caller.
    """

    def __init__(self, base_url: str, timeout: float = 10,
                 cache: Optional[ResultCache] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache if cache is not None else ResultCache()
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Optional[Any]:
        """Send a request and return the decoded JSON body, or None on failure"""
        headers = {**NO_CACHE_HEADERS, **kwargs.pop("headers", {})}
        try:
            r = self.session.request(
                method, f"{self.base_url}{path}",
                headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            return None

        if r.status_code != 200:
            logger.error(f"{method} {path} -> HTTP {r.status_code}")
            return None

        try:
            return r.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned invalid JSON: {e}")
            return None

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: str) -> RemoteLookup:
        key = ("entry", entry_id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            logger.debug(f"Using cached entry lookup (ID={entry_id})")
            return cached

        data = self._request("GET", "/api/clipboard", params={"id": entry_id})
        if data is None:
            return RemoteLookup(ok=False)

        if not data.get("exists"):
            result = RemoteLookup(expired=bool(data.get("expired")))
        else:
            try:
                entry = Entry.model_validate({"id": entry_id, **data.get("clipboard", {})})
            except ValidationError as e:
                logger.error(f"Server returned an invalid entry for ID={entry_id}: {e}")
                return RemoteLookup(ok=False)
            result = RemoteLookup(entry=entry)

        self.cache.set(key, result)
        return result

    def save_entry(self, entry_id: str, content: str, is_protected: bool = False,
                   expiration_hours: Optional[float] = None,
                   ttl_minutes: Optional[float] = None) -> Optional[Entry]:
        """Upsert an entry; returns the stored entry with server timestamps"""
        body = {"id": entry_id, "content": content, "isProtected": is_protected}
        if expiration_hours is not None:
            body["expirationHours"] = expiration_hours
        if ttl_minutes is not None:
            body["ttlMinutes"] = ttl_minutes

        data = self._request("POST", "/api/clipboard", json=body)
        self.cache.invalidate(entry_id)
        if not data or not data.get("success"):
            return None

        try:
            return Entry.model_validate({"id": entry_id, **data["clipboard"]})
        except (KeyError, ValidationError) as e:
            logger.error(f"Server returned an invalid entry for ID={entry_id}: {e}")
            return None

    def delete_entry(self, entry_id: str) -> bool:
        data = self._request("DELETE", "/api/clipboard", params={"id": entry_id})
        self.cache.invalidate(entry_id)
        return bool(data and data.get("success"))

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def secret_exists(self, entry_id: str) -> bool:
        key = ("secret-exists", entry_id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        data = self._request("GET", "/api/passwords", params={"id": entry_id})
        if data is None:
            return False
        exists = data.get("exists") is True
        self.cache.set(key, exists)
        return exists

    def save_secret(self, entry_id: str, plaintext: str) -> bool:
        data = self._request("POST", "/api/passwords", json={"id": entry_id, "password": plaintext})
        self.cache.invalidate(entry_id)
        return bool(data and data.get("success"))

    def verify_secret(self, entry_id: str, plaintext: str) -> bool:
        key = ("secret-verify", entry_id, plaintext)
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        data = self._request("PUT", "/api/passwords", json={"id": entry_id, "password": plaintext})
        if data is None:
            return False
        valid = data.get("valid") is True
        self.cache.set(key, valid)
        logger.info(f"Password verification for ID={entry_id}: {'ok' if valid else 'mismatch'}")
        return valid

    def delete_secret(self, entry_id: str) -> bool:
        data = self._request("DELETE", "/api/passwords", params={"id": entry_id})
        self.cache.invalidate(entry_id)
        return bool(data and data.get("success"))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self, hours: float = 0) -> Optional[dict]:
        """Ask the server to sweep entries expired for more than the given hours"""
        data = self._request("GET", "/api/cleanup", params={"hours": hours})
        if data:
            for entry_id in data.get("cleanedIds", []):
                self.cache.invalidate(entry_id)
        return data
