"""Data models shared by the server, the client and the local cache"""

import random
import string
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .timeservice import utc_now_ms

HISTORY_LIMIT = 50
TITLE_LENGTH = 30
SUMMARY_LENGTH = 100

_BASE36 = string.digits + string.ascii_lowercase


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire and on disk"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class Entry(CamelModel):
    """A shared clipboard record"""

    id: str
    content: str = ""
    is_protected: bool = False
    created_at: int
    expires_at: int
    last_modified: int

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


class HistoryItem(CamelModel):
    """A locally cached index row for a previously viewed entry"""

    id: str
    title: str
    content: str
    is_protected: bool = False
    visited_at: int
    created_at: int
    expires_at: int


class EntryWrite(CamelModel):
    id: str = ""
    content: str = ""
    is_protected: bool = False
    expiration_hours: Optional[float] = Field(default=None, gt=0)
    ttl_minutes: Optional[float] = Field(default=None, gt=0)


class SecretWrite(CamelModel):
    id: str = ""
    password: str = ""


class CleanupResult(CamelModel):
    success: bool = True
    cleaned_count: int
    cleaned_ids: List[str]
    timestamp: int
    formatted_time: str


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Random part plus a timestamp part; practically unique, not guaranteed"""
    random_part = "".join(random.choice(_BASE36) for _ in range(8))
    return f"{random_part}-{_to_base36(utc_now_ms())}"


def make_title(entry_id: str, content: str) -> str:
    title = content.strip().replace("\n", " ")[:TITLE_LENGTH]
    if not title:
        return f"Clipboard {entry_id}"
    if len(content) > TITLE_LENGTH:
        title += "..."
    return title


def make_summary(content: str) -> str:
    summary = content.strip()[:SUMMARY_LENGTH]
    if len(content) > SUMMARY_LENGTH:
        summary += "..."
    return summary
