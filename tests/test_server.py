"""
tests/test_server.py
HTTP API through FastAPI's TestClient with a hand-driven clock (offset 0).
"""
import json

from cloudclip.timeservice import HOUR_MS, MINUTE_MS


def create(api, entry_id="abc", content="hello", **extra):
    body = {"id": entry_id, "content": content, "isProtected": False, **extra}
    r = api.post("/api/clipboard", json=body)
    assert r.status_code == 200
    return r.json()


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# /api/clipboard
# ---------------------------------------------------------------------------

def test_create_and_fetch(api):
    data = create(api)
    assert data["success"] is True
    assert data["isUpdate"] is False
    assert data["clipboard"]["expiresAt"] == 24 * HOUR_MS

    r = api.get("/api/clipboard", params={"id": "abc"})
    body = r.json()
    assert body["exists"] is True
    assert body["clipboard"]["content"] == "hello"
    assert body["clipboard"]["isProtected"] is False


def test_entry_expires_after_ttl(api, clock):
    create(api)
    clock.set(24 * HOUR_MS + 1)
    r = api.get("/api/clipboard", params={"id": "abc"})
    assert r.json() == {"exists": False, "expired": True}

    # The entry is gone, but later reads still report it as expired for a while
    r = api.get("/api/clipboard", params={"id": "abc"})
    assert r.json() == {"exists": False, "expired": True}
    assert api.get("/api/clipboard", params={"id": "abc"}).json()["expired"] is True

    clock.advance(HOUR_MS + 1)
    assert api.get("/api/clipboard", params={"id": "abc"}).json() == {"exists": False}


def test_entry_swept_by_cleanup_reads_as_expired(api, clock):
    create(api, ttlMinutes=1)
    clock.set(2 * HOUR_MS)
    assert api.get("/api/cleanup").json()["cleanedIds"] == ["abc"]
    assert api.get("/api/clipboard", params={"id": "abc"}).json() == {"exists": False, "expired": True}


def test_recreated_then_deleted_id_reads_as_missing(api, clock):
    create(api, ttlMinutes=1)
    clock.set(2 * MINUTE_MS)
    assert api.get("/api/clipboard", params={"id": "abc"}).json()["expired"] is True

    create(api, content="second life")
    assert api.get("/api/clipboard", params={"id": "abc"}).json()["exists"] is True
    api.delete("/api/clipboard", params={"id": "abc"})
    assert api.get("/api/clipboard", params={"id": "abc"}).json() == {"exists": False}


def test_unknown_id(api):
    assert api.get("/api/clipboard", params={"id": "nope"}).json() == {"exists": False}


def test_missing_id_is_400(api):
    assert api.get("/api/clipboard").status_code == 400
    assert api.delete("/api/clipboard").status_code == 400
    assert api.get("/api/passwords").status_code == 400
    r = api.post("/api/clipboard", json={"content": "x"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing id parameter"


def test_oversized_content_is_413(api):
    # max_content_kb is 1 in the test config
    r = api.post("/api/clipboard", json={"id": "big", "content": "x" * 1025})
    assert r.status_code == 413
    assert api.get("/api/clipboard", params={"id": "big"}).json() == {"exists": False}


def test_expiration_hours_and_ttl_minutes(api):
    data = create(api, "h", expirationHours=2)
    assert data["clipboard"]["expiresAt"] == 2 * HOUR_MS

    # ttlMinutes takes precedence over expirationHours
    data = create(api, "m", expirationHours=2, ttlMinutes=5)
    assert data["clipboard"]["expiresAt"] == 5 * MINUTE_MS


def test_non_positive_expiration_is_rejected(api):
    r = api.post("/api/clipboard", json={"id": "z", "content": "x", "expirationHours": 0})
    assert r.status_code == 422


def test_update_keeps_creation_and_expiry(api, clock):
    create(api, expirationHours=1)
    clock.set(10 * MINUTE_MS)
    data = create(api, content="changed", expirationHours=48)
    assert data["isUpdate"] is True
    clip = data["clipboard"]
    assert clip["content"] == "changed"
    assert clip["createdAt"] == 0
    assert clip["expiresAt"] == HOUR_MS
    assert clip["lastModified"] == 10 * MINUTE_MS


def test_writing_an_expired_id_starts_fresh(api, clock):
    create(api, expirationHours=1)
    clock.set(2 * HOUR_MS)
    data = create(api, content="again", expirationHours=1)
    assert data["isUpdate"] is False
    assert data["clipboard"]["createdAt"] == 2 * HOUR_MS


def test_delete_cascades_to_password(api):
    create(api, "p1", isProtected=True)
    api.post("/api/passwords", json={"id": "p1", "password": "pw"})

    r = api.delete("/api/clipboard", params={"id": "p1"})
    assert r.json() == {"success": True}
    assert api.get("/api/clipboard", params={"id": "p1"}).json() == {"exists": False}
    assert api.get("/api/passwords", params={"id": "p1"}).json() == {"exists": False}


def test_delete_of_unknown_id_succeeds(api):
    assert api.delete("/api/clipboard", params={"id": "nope"}).json() == {"success": True}


def test_records_are_persisted_as_json(api, data_dir):
    create(api)
    stored = json.loads((data_dir / "clipboards.json").read_text())
    assert stored["abc"]["content"] == "hello"


# ---------------------------------------------------------------------------
# /api/passwords
# ---------------------------------------------------------------------------

def test_password_verify_flow(api):
    create(api, "p1", "CRYPTO:xyz", isProtected=True)
    r = api.post("/api/passwords", json={"id": "p1", "password": "s3cr3t"})
    assert r.json() == {"success": True}
    assert api.get("/api/passwords", params={"id": "p1"}).json() == {"exists": True}

    assert api.put("/api/passwords", json={"id": "p1", "password": "wrong"}).json() == {"valid": False}
    assert api.put("/api/passwords", json={"id": "p1", "password": "s3cr3t"}).json() == {"valid": True}


def test_password_plaintext_never_hits_disk(api, data_dir):
    api.post("/api/passwords", json={"id": "p1", "password": "s3cr3t"})
    assert "s3cr3t" not in (data_dir / "passwords.json").read_text()


def test_verify_without_stored_password(api):
    body = api.put("/api/passwords", json={"id": "nope", "password": "x"}).json()
    assert body["valid"] is False
    assert "error" in body


def test_password_requests_need_id_and_password(api):
    assert api.post("/api/passwords", json={"id": "p1"}).status_code == 400
    assert api.put("/api/passwords", json={"password": "x"}).status_code == 400


def test_delete_password(api):
    api.post("/api/passwords", json={"id": "p1", "password": "pw"})
    assert api.delete("/api/passwords", params={"id": "p1"}).json() == {"success": True}
    assert api.get("/api/passwords", params={"id": "p1"}).json() == {"exists": False}


def test_password_of_expired_entry_is_swept(api, clock):
    create(api, "p1", expirationHours=1)
    api.post("/api/passwords", json={"id": "p1", "password": "pw"})
    clock.set(HOUR_MS + 1)
    assert api.get("/api/passwords", params={"id": "p1"}).json() == {"exists": False}


# ---------------------------------------------------------------------------
# /api/cleanup
# ---------------------------------------------------------------------------

def test_cleanup_endpoint(api, clock):
    create(api, "a", ttlMinutes=1)
    create(api, "b", expirationHours=3)
    clock.set(2 * HOUR_MS)

    body = api.get("/api/cleanup").json()
    assert body["success"] is True
    assert body["cleanedCount"] == 1
    assert body["cleanedIds"] == ["a"]
    assert body["timestamp"] == 2 * HOUR_MS
    assert body["formattedTime"] == "1970-01-01 02:00:00"


def test_cleanup_with_grace_hours(api, clock):
    create(api, "a", expirationHours=1)
    clock.set(2 * HOUR_MS)
    # Expired one hour ago: a two hour grace keeps it
    assert api.get("/api/cleanup", params={"hours": 2}).json()["cleanedIds"] == []
    assert api.get("/api/cleanup", params={"hours": 0.5}).json()["cleanedIds"] == ["a"]


def test_cleanup_rejects_negative_hours(api):
    assert api.get("/api/cleanup", params={"hours": -1}).status_code == 422
