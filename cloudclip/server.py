#!/usr/bin/env python3
"""
cloudclip - short-lived, optionally password-protected clipboard sharing
"""

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import load_config, setup_logging
from .expiry import ExpiryReconciler
from .models import CleanupResult, Entry, EntryWrite, SecretWrite
from .storage import PasswordStore, RecordStore
from .timeservice import HOUR_MS, MINUTE_MS, TimeService

logger = logging.getLogger("cloudclip.server")


class CleanupThread(threading.Thread):
    """Periodically sweeps expired entries even when there is no traffic"""

    def __init__(self, reconciler: ExpiryReconciler, interval_minutes: float):
        super().__init__(name="cloudclip-cleanup", daemon=True)
        self.reconciler = reconciler
        self.interval_seconds = interval_minutes * 60
        self.stop_event = threading.Event()

    def run(self) -> None:
        while not self.stop_event.wait(self.interval_seconds):
            try:
                deleted = self.reconciler.sweep_for_request()
                if deleted:
                    logger.info(f"Cleanup task: removed {len(deleted)} expired entries")
            except Exception as e:
                logger.error(f"Error in cleanup task: {e}")

    def stop(self) -> None:
        self.stop_event.set()


def create_app(config: dict, time_service: Optional[TimeService] = None) -> FastAPI:
    """Build the API around the stores configured in config"""
    time_service = time_service or TimeService(config.get("utc_offset_hours", 8))
    data_dir = Path(config["data_dir"])
    # One lock for both stores: handlers and the cleanup thread write them
    store_lock = threading.RLock()
    records = RecordStore(data_dir, lock=store_lock)
    passwords = PasswordStore(data_dir, config["password_salt"], lock=store_lock)
    reconciler = ExpiryReconciler(
        records, passwords, time_service,
        request_grace_hours=config.get("request_grace_hours", 1),
        swept_memory_hours=config.get("swept_memory_hours", 1),
    )
    default_hours = config.get("default_expiration_hours", 24)
    max_content_bytes = config.get("max_content_kb", 1024) * 1024
    interval_minutes = config.get("cleanup_interval_minutes", 30)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info("cloudclip server starting")
        logger.info(f"Data directory: {data_dir}")
        logger.info(f"Civil time: UTC{time_service.utc_offset_hours:+g}, now {time_service.format(time_service.now())}")
        logger.info("=" * 60)

        cleanup_thread = None
        if interval_minutes and interval_minutes > 0:
            cleanup_thread = CleanupThread(reconciler, interval_minutes)
            cleanup_thread.start()
            logger.info(f"Scheduled cleanup every {interval_minutes} minutes")

        yield

        if cleanup_thread is not None:
            cleanup_thread.stop()
        logger.info("cloudclip server stopped")

    app = FastAPI(title="cloudclip", version="2.0.0", lifespan=lifespan)
    app.state.records = records
    app.state.passwords = passwords
    app.state.reconciler = reconciler
    app.state.time = time_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get("cors_origins", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} from {client_ip} -> {response.status_code}")
        return response

    def require_id(entry_id: Optional[str]) -> str:
        if not entry_id:
            logger.warning("Request without an id parameter")
            raise HTTPException(status_code=400, detail="Missing id parameter")
        return entry_id

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    @app.get("/api/clipboard")
    async def get_clipboard(id: Optional[str] = None):
        """Fetch one entry, telling expired apart from missing"""
        entry_id = require_id(id)
        now = time_service.now()
        swept = reconciler.sweep_for_request(now)

        entry = records.get(entry_id)
        if entry is None:
            if entry_id in swept or reconciler.was_swept(entry_id, now):
                logger.info(f"ID={entry_id} has expired")
                return {"exists": False, "expired": True}
            logger.info(f"ID={entry_id} does not exist")
            return {"exists": False}

        return {"exists": True, "clipboard": entry.to_json_dict()}

    @app.post("/api/clipboard")
    async def save_clipboard(body: EntryWrite):
        """Create or update an entry"""
        entry_id = require_id(body.id)
        if len(body.content.encode('utf-8')) > max_content_bytes:
            logger.warning(f"Rejected oversized content for ID={entry_id}")
            raise HTTPException(status_code=413, detail=f"Content exceeds max size of {max_content_bytes} bytes")

        now = time_service.now()
        reconciler.sweep_for_request(now)

        if body.ttl_minutes is not None:
            ttl_ms = int(body.ttl_minutes * MINUTE_MS)
        else:
            ttl_ms = TimeService.hours_to_ms(body.expiration_hours or default_hours)

        # A live entry keeps its creation and expiry; anything else starts fresh
        with records.lock:
            existing = records.get(entry_id)
            entry = Entry(
                id=entry_id,
                content=body.content,
                is_protected=body.is_protected,
                created_at=existing.created_at if existing else now,
                expires_at=existing.expires_at if existing else now + ttl_ms,
                last_modified=now,
            )
            saved = records.put(entry_id, entry)
        if not saved:
            raise HTTPException(status_code=500, detail="Failed to save clipboard")
        reconciler.forget(entry_id)

        logger.info(
            f"ID={entry_id} {'updated' if existing else 'created'}, "
            f"expires {time_service.format(entry.expires_at)}"
        )
        return {"success": True, "isUpdate": existing is not None, "clipboard": entry.to_json_dict()}

    @app.delete("/api/clipboard")
    async def delete_clipboard(id: Optional[str] = None):
        """Delete an entry and its password hash; succeeds whether or not it existed"""
        entry_id = require_id(id)
        reconciler.sweep_for_request()
        existed = records.delete(entry_id)
        passwords.delete(entry_id)
        reconciler.forget(entry_id)
        logger.info(f"ID={entry_id} {'deleted' if existed else 'did not exist, nothing to delete'}")
        return {"success": True}

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    @app.get("/api/passwords")
    async def password_exists(id: Optional[str] = None):
        entry_id = require_id(id)
        reconciler.sweep_for_request()
        return {"exists": passwords.exists(entry_id)}

    @app.post("/api/passwords")
    async def save_password(body: SecretWrite):
        if not body.id or not body.password:
            raise HTTPException(status_code=400, detail="Missing id or password")
        reconciler.sweep_for_request()
        if not passwords.set(body.id, body.password):
            raise HTTPException(status_code=500, detail="Failed to save password")
        logger.info(f"Password saved for ID={body.id}")
        return {"success": True}

    @app.put("/api/passwords")
    async def verify_password(body: SecretWrite):
        if not body.id or not body.password:
            raise HTTPException(status_code=400, detail="Missing id or password")
        reconciler.sweep_for_request()
        if not passwords.exists(body.id):
            logger.info(f"No password stored for ID={body.id}, verification failed")
            return {"valid": False, "error": "No password stored for this id"}
        valid = passwords.verify(body.id, body.password)
        logger.info(f"Password verification for ID={body.id}: {'ok' if valid else 'mismatch'}")
        return {"valid": valid}

    @app.delete("/api/passwords")
    async def delete_password(id: Optional[str] = None):
        entry_id = require_id(id)
        reconciler.sweep_for_request()
        passwords.delete(entry_id)
        return {"success": True}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @app.get("/api/cleanup")
    async def cleanup(hours: float = Query(0, ge=0)):
        """Sweep entries that expired more than `hours` ago; meant for cron callers"""
        now = time_service.now()
        logger.info(f"Cleanup requested at {time_service.format(now)} (grace {hours}h)")
        deleted = reconciler.sweep(now, grace_ms=int(hours * HOUR_MS))
        result = CleanupResult(
            cleaned_count=len(deleted),
            cleaned_ids=deleted,
            timestamp=now,
            formatted_time=time_service.format(now),
        )
        return result.to_json_dict()

    return app


def main(config_file: Optional[str] = None) -> None:
    config = load_config(config_file)
    setup_logging(config.get("log_file"))
    port = config.get("port", 3000)
    print(f"Starting cloudclip server on port {port}...")
    print(f"Data directory: {config.get('data_dir')}")
    print(f"Log file: {config.get('log_file')}")
    print(f"Civil time offset: UTC{config.get('utc_offset_hours'):+g}")
    print(f"Default expiration: {config.get('default_expiration_hours')}h")
    print(f"Cleanup interval: {config.get('cleanup_interval_minutes')} minutes")
    uvicorn.run(create_app(config), host=config.get("host", "0.0.0.0"), port=port)


if __name__ == "__main__":
    main()
