"""Pick the authoritative copy of an entry seen both locally and on the server"""

from typing import Optional

from .models import Entry


def resolve(local: Optional[Entry], remote: Optional[Entry]) -> Optional[Entry]:
    """
    Most recently modified wins; on a tie the server copy wins.

    Sync is one-directional: when the remote copy wins the caller mirrors it
    into the local cache. A local win is never pushed back from here.
    """
    if local is None:
        return remote
    if remote is None:
        return local
    if local.last_modified > remote.last_modified:
        return local
    return remote


def is_remote(resolved: Optional[Entry], remote: Optional[Entry]) -> bool:
    return resolved is not None and resolved is remote
