"""
Unlock flow for password-protected entries.

    LOCKED --(no stored secret)---------------> AWAITING_INPUT
    LOCKED --(stored secret verifies)---------> UNLOCKED
    AWAITING_INPUT --(secret verifies)--------> UNLOCKED
    AWAITING_INPUT --(secret fails)-----------> AWAITING_INPUT (+1 failure)
    AWAITING_INPUT --(failure limit reached)--> BLOCKED
    BLOCKED --(block elapsed)-----------------> AWAITING_INPUT

UNLOCKED lasts for the session (session_secrets). A secret cached on the
device lets a fresh session unlock silently.
"""

import logging
from enum import Enum
from typing import Callable, Dict, Optional

from . import codec
from .local_cache import BlockStatus, ClientCache
from .models import Entry

logger = logging.getLogger("cloudclip.access")

Verifier = Callable[[str, str], bool]


class AccessState(Enum):
    LOCKED = "locked"
    AWAITING_INPUT = "awaiting_input"
    UNLOCKED = "unlocked"
    BLOCKED = "blocked"


class AccessSession:
    """Tracks whether this session may read one entry"""

    def __init__(self, entry: Entry, cache: ClientCache,
                 verifier: Optional[Verifier] = None,
                 session_secrets: Optional[Dict[str, str]] = None):
        self.entry = entry
        self.cache = cache
        self.verifier = verifier
        self.session_secrets = session_secrets if session_secrets is not None else {}
        self.plaintext: Optional[str] = None
        self._state = AccessState.LOCKED

    @property
    def state(self) -> AccessState:
        if self._state is AccessState.BLOCKED and not self.cache.is_blocked(self.entry.id).blocked:
            logger.info(f"Block on ID={self.entry.id} elapsed, accepting input again")
            self._state = AccessState.AWAITING_INPUT
        return self._state

    @property
    def block_status(self) -> BlockStatus:
        return self.cache.is_blocked(self.entry.id)

    def open(self) -> AccessState:
        """Leave LOCKED, silently unlocking with a stored secret when possible"""
        if self._state is not AccessState.LOCKED:
            return self.state

        if not self.entry.is_protected:
            self.plaintext = self.entry.content
            self._state = AccessState.UNLOCKED
            return self._state

        entry_id = self.entry.id
        secret = self.session_secrets.get(entry_id) or self.cache.get_secret(entry_id)
        if secret:
            if self._try(secret):
                self._unlock(secret)
                return self._state
            logger.warning(f"Stored secret for ID={entry_id} no longer works, dropping it")
            self.session_secrets.pop(entry_id, None)
            self.cache.remove_secret(entry_id)

        if self.cache.is_blocked(entry_id).blocked:
            self._state = AccessState.BLOCKED
        else:
            self._state = AccessState.AWAITING_INPUT
        return self._state

    def submit(self, secret: str) -> AccessState:
        """Try a user-supplied secret"""
        if self._state is AccessState.LOCKED:
            self.open()

        state = self.state
        if state is AccessState.UNLOCKED:
            return state

        entry_id = self.entry.id
        if self.cache.is_blocked(entry_id).blocked:
            self._state = AccessState.BLOCKED
            return self._state

        if self._try(secret):
            self._unlock(secret)
            return self._state

        status = self.cache.record_failed_auth(entry_id)
        if status.blocked:
            self._state = AccessState.BLOCKED
        else:
            logger.info(f"Wrong secret for ID={entry_id}, {status.remaining_attempts} attempts left")
            self._state = AccessState.AWAITING_INPUT
        return self._state

    def _try(self, secret: str) -> bool:
        if self.verifier is not None and not self.verifier(self.entry.id, secret):
            return False
        try:
            self.plaintext = codec.decode(self.entry.content, secret)
        except codec.DecryptionError as e:
            logger.info(f"Could not decode ID={self.entry.id}: {e}")
            self.plaintext = None
            return False
        return True

    def _unlock(self, secret: str) -> None:
        entry_id = self.entry.id
        self.session_secrets[entry_id] = secret
        self.cache.save_secret(entry_id, secret)
        self.cache.reset_failed_auth(entry_id)
        self._state = AccessState.UNLOCKED
        logger.info(f"Unlocked ID={entry_id}")
