# app/sync/client.py
"""
Polling client for the dashboard snapshot endpoint.

RealTimeSync fetches the snapshot on a fixed interval, drops payloads that
did not change, and fans changed payloads out to subscribers. Failed polls
keep the last good payload and only flag the error.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config.settings import AppConfig

logger = logging.getLogger(__name__)

IDLE = "idle"
POLLING = "polling"
ERROR = "error"
STOPPED = "stopped"

VOLATILE_KEYS = ("timestamp", "lastUpdated")


@dataclass
class TransportResponse:
    status_code: int
    text: str = ""
    etag: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304

    def error_message(self) -> str:
        try:
            detail = json.loads(self.text).get("error") or "Unknown error"
        except (ValueError, AttributeError):
            detail = "Unknown error"
        return f"HTTP {self.status_code}: {detail}"


class SnapshotTransport:
    """Fetches one snapshot; implementations raise on connection failures"""

    def fetch(self, etag: Optional[str] = None) -> TransportResponse:
        raise NotImplementedError


class HttpSnapshotTransport(SnapshotTransport):
    def __init__(
        self,
        base_url: str,
        token: str,
        endpoint: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        self.url = base_url.rstrip("/") + (endpoint or AppConfig.SYNC['snapshot_endpoint'])
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        })

    def fetch(self, etag: Optional[str] = None) -> TransportResponse:
        headers = {"If-None-Match": etag} if etag else {}
        response = self.session.get(self.url, headers=headers)
        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            etag=response.headers.get("ETag"),
        )


def dedup_key(text: str) -> str:
    """Canonical form of a payload with the per-request timestamps removed"""
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    if isinstance(payload, dict):
        payload = {k: v for k, v in payload.items() if k not in VOLATILE_KEYS}
    return json.dumps(payload, sort_keys=True)


class RealTimeSync:
    """
    Interval poller with subscribe/unsubscribe, pause on hidden and force refresh.

    Payloads are compared by ``dedup_key``: keys sorted, ``timestamp`` and
    ``lastUpdated`` dropped. A response whose only change is its timestamp is
    therefore discarded, and ``data["timestamp"]`` keeps the value from the
    last payload that changed. ``force_refresh`` always replaces it.
    """

    def __init__(
        self,
        transport: SnapshotTransport,
        polling_interval_ms: Optional[int] = None,
        on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
        scheduler=None,
        job_id: str = "realtime_sync"
    ):
        self.transport = transport
        self.polling_interval_ms = polling_interval_ms or AppConfig.SYNC['polling_interval_ms']
        self.on_update = on_update
        self.scheduler = scheduler or BackgroundScheduler()
        self.job_id = job_id

        self.state = IDLE
        self.data: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.is_connected = True
        self.loading = True
        self.last_sync: Optional[datetime] = None

        self._last_key = ""
        self._etag: Optional[str] = None
        self._subscribers: List[Callable[[Dict[str, Any]], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, on_change: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        self._subscribers.append(on_change)

        def unsubscribe():
            if on_change in self._subscribers:
                self._subscribers.remove(on_change)

        return unsubscribe

    @property
    def is_polling(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def start(self):
        """Fetch immediately, then keep polling on the interval"""
        if self.is_polling:
            self.scheduler.remove_job(self.job_id)

        self.state = POLLING
        self.poll_once()

        self.scheduler.add_job(
            self.poll_once,
            trigger=IntervalTrigger(seconds=self.polling_interval_ms / 1000),
            id=self.job_id,
            name="Poll dashboard snapshot",
            replace_existing=True
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Real-time sync started (every %sms)", self.polling_interval_ms)

    def stop(self):
        if self.is_polling:
            self.scheduler.remove_job(self.job_id)
        self.state = STOPPED
        logger.info("Real-time sync stopped")

    def shutdown(self):
        self.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def set_visible(self, visible: bool):
        """Hidden clients do not poll; becoming visible restarts with an immediate fetch"""
        if visible:
            self.start()
        else:
            self.stop()

    def force_refresh(self):
        with self._lock:
            self._last_key = ""
            self._etag = None
        self.poll_once()

    def poll_once(self) -> bool:
        """Run one fetch cycle. Returns True when new data was accepted."""
        with self._lock:
            try:
                response = self.transport.fetch(self._etag)
            except (requests.RequestException, OSError) as exc:
                self._fail(f"Sync failed: {exc}")
                return False

            self.loading = False

            if response.not_modified:
                self._recover()
                return False
            if not response.ok:
                self._fail(response.error_message())
                return False

            key = dedup_key(response.text)
            self._etag = response.etag
            self._recover()
            if key == self._last_key:
                return False

            try:
                data = json.loads(response.text)
            except ValueError as exc:
                self._fail(f"Invalid snapshot payload: {exc}")
                return False

            self._last_key = key
            self.data = data
            self.last_sync = datetime.utcnow()
            listeners = list(self._subscribers)

        if self.on_update is not None:
            self.on_update(data)
        for listener in listeners:
            listener(data)
        return True

    def _recover(self):
        self.error = None
        self.is_connected = True
        if self.state == ERROR:
            self.state = POLLING

    def _fail(self, message: str):
        logger.warning("Real-time sync error: %s", message)
        self.loading = False
        self.error = message
        self.is_connected = False
        self.state = ERROR
