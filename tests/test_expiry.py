import threading
from unittest.mock import MagicMock

from cloudclip.timeservice import HOUR_MS

from conftest import make_entry


def seed(records, passwords, *entries):
    for entry in entries:
        records.put(entry.id, entry)
        passwords.set(entry.id, f"pw-{entry.id}")


def test_strict_sweep_removes_expired_entry_and_password(records, passwords, reconciler):
    now = 10 * HOUR_MS
    expired = make_entry("old", created_at=0, ttl_ms=now - 1)  # expiresAt = now - 1
    live = make_entry("new", created_at=now, ttl_ms=HOUR_MS)
    seed(records, passwords, expired, live)

    assert reconciler.sweep(now) == ["old"]
    assert records.get("old") is None
    assert passwords.exists("old") is False
    assert records.get("new") is not None
    assert passwords.exists("new") is True


def test_entry_expiring_exactly_now_survives(records, passwords, reconciler):
    records.put("edge", make_entry("edge", created_at=0, ttl_ms=HOUR_MS))
    assert reconciler.sweep(HOUR_MS) == []
    assert reconciler.sweep(HOUR_MS + 1) == ["edge"]


def test_sweep_is_idempotent(records, passwords, reconciler):
    seed(records, passwords, make_entry("a", ttl_ms=1), make_entry("b", ttl_ms=2))
    first = reconciler.sweep(HOUR_MS)
    assert sorted(first) == ["a", "b"]
    assert reconciler.sweep(HOUR_MS) == []


def test_grace_window(records, passwords, reconciler):
    now = 5 * HOUR_MS
    x = 30 * 60 * 1000  # expired 30 minutes ago
    records.put("straggler", make_entry("straggler", created_at=0, ttl_ms=now - x))

    # Expired for less than the grace window: the loose pass leaves it
    assert reconciler.sweep(now, grace_ms=HOUR_MS) == []
    assert records.get("straggler") is not None
    assert reconciler.sweep(now, grace_ms=x) == []
    # A grace window shorter than its age, or the strict pass, removes it
    assert reconciler.sweep(now, grace_ms=x - 1) == ["straggler"]


def test_unexpired_entry_survives_both_passes(records, passwords, reconciler):
    now = 5 * HOUR_MS
    records.put("soon", make_entry("soon", created_at=0, ttl_ms=now + 10))
    assert reconciler.sweep(now) == []
    assert reconciler.sweep(now, grace_ms=HOUR_MS) == []


def test_sweep_writes_each_store_once(records, passwords, reconciler, monkeypatch):
    seed(records, passwords, *(make_entry(f"e{i}", ttl_ms=1) for i in range(5)))
    writes = {"records": 0, "passwords": 0}
    rec_save, pw_save = records.save, passwords.save

    def count(name, fn):
        def wrapper(data):
            writes[name] += 1
            return fn(data)
        return wrapper

    monkeypatch.setattr(records, "save", count("records", rec_save))
    monkeypatch.setattr(passwords, "save", count("passwords", pw_save))

    assert len(reconciler.sweep(HOUR_MS)) == 5
    assert writes == {"records": 1, "passwords": 1}


def test_nothing_expired_means_no_write(records, reconciler, monkeypatch):
    records.put("live", make_entry("live"))
    save = MagicMock()
    monkeypatch.setattr(records, "save", save)
    assert reconciler.sweep(1) == []
    save.assert_not_called()


def test_sweep_uses_time_service_when_now_omitted(records, reconciler, clock):
    records.put("abc", make_entry("abc", created_at=0, ttl_ms=1000))
    clock.set(1001)
    assert reconciler.sweep() == ["abc"]


def test_sweep_for_request_runs_both_passes(records, passwords, reconciler):
    now = 10 * HOUR_MS
    records.put("a", make_entry("a", created_at=0, ttl_ms=now - 1))
    records.put("b", make_entry("b", created_at=0, ttl_ms=now - 2 * HOUR_MS))
    assert sorted(reconciler.sweep_for_request(now)) == ["a", "b"]
    assert reconciler.sweep_for_request(now) == []


def test_write_racing_a_sweep_is_not_lost(records, passwords, reconciler, monkeypatch):
    records.put("old", make_entry("old", created_at=0, ttl_ms=1))
    snapshot = records.get_all
    writer = threading.Thread(target=records.put, args=("new", make_entry("new", created_at=HOUR_MS)))

    def get_all_then_race():
        entries = snapshot()
        if writer.ident is None:
            # The writer lands between the sweep's read and its write
            writer.start()
            writer.join(timeout=0.2)
        return entries

    monkeypatch.setattr(records, "get_all", get_all_then_race)
    assert reconciler.sweep(HOUR_MS) == ["old"]
    writer.join(timeout=5)

    assert not writer.is_alive()
    monkeypatch.undo()
    assert list(records.get_all()) == ["new"]


def test_swept_ids_are_remembered_for_a_while(records, reconciler):
    records.put("old", make_entry("old", created_at=0, ttl_ms=1))
    reconciler.sweep(2)
    assert reconciler.was_swept("old", 2) is True
    assert reconciler.was_swept("other", 2) is False
    assert reconciler.was_swept("old", 2 + HOUR_MS) is True
    assert reconciler.was_swept("old", 3 + HOUR_MS) is False


def test_forget_clears_the_swept_marker(records, reconciler):
    records.put("old", make_entry("old", created_at=0, ttl_ms=1))
    reconciler.sweep(2)
    reconciler.forget("old")
    assert reconciler.was_swept("old", 2) is False
