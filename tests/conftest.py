"""
Shared fixtures: a hand-driven clock, stores in a temp directory and a
TestClient over the API.
"""
import pytest
from fastapi.testclient import TestClient

from cloudclip.config import default_config
from cloudclip.expiry import ExpiryReconciler
from cloudclip.local_cache import ClientCache
from cloudclip.models import Entry
from cloudclip.server import create_app
from cloudclip.storage import PasswordStore, RecordStore
from cloudclip.timeservice import HOUR_MS, ManualClock, TimeService

SALT = "test-salt"


@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def time_service(clock):
    # Offset 0 keeps instants equal to the clock reading
    return TimeService(utc_offset_hours=0, clock=clock)


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def records(data_dir):
    return RecordStore(data_dir)


@pytest.fixture
def passwords(data_dir):
    return PasswordStore(data_dir, SALT)


@pytest.fixture
def reconciler(records, passwords, time_service):
    return ExpiryReconciler(records, passwords, time_service, request_grace_hours=1)


@pytest.fixture
def local_cache(tmp_path, time_service):
    return ClientCache(tmp_path / "local", time_service)


@pytest.fixture
def config(tmp_path, data_dir):
    cfg = default_config(tmp_path)
    cfg.update({
        "data_dir": str(data_dir),
        "password_salt": SALT,
        "cleanup_interval_minutes": 0,
        "max_content_kb": 1,
    })
    return cfg


@pytest.fixture
def api(config, time_service):
    app = create_app(config, time_service=time_service)
    with TestClient(app) as client:
        yield client


def make_entry(entry_id="abc", content="hello", created_at=0, ttl_ms=24 * HOUR_MS,
               last_modified=None, is_protected=False):
    return Entry(
        id=entry_id,
        content=content,
        is_protected=is_protected,
        created_at=created_at,
        expires_at=created_at + ttl_ms,
        last_modified=created_at if last_modified is None else last_modified,
    )
