import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from linkvault.core.errors import BackendUnavailable
from linkvault.core.tracing import observe_sweep
from linkvault.models.upload import utcnow
from linkvault.services.blobs import BlobBackend
from linkvault.services.consumption import destroy_record
from linkvault.services.store import RecordStore

logger = logging.getLogger("lv.sweeper")


class ExpirySweeper:
    """
    Periodically destroys expired uploads (blob first, then record).

    Owned by the app lifecycle: `start()` on startup, `stop()` on shutdown.
    Races with consumption-triggered deletes and with the read path's passive
    expiry are harmless: every delete tolerates the record being gone.
    """

    def __init__(
        self,
        store: RecordStore,
        blobs: BlobBackend,
        *,
        interval_seconds: float = 60.0,
        batch_size: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[datetime] = None) -> int:
        """Sweep one batch. Returns how many records this pass deleted."""
        now = now or self._clock()
        try:
            expired = self.store.find_expired(now, limit=self.batch_size)
        except BackendUnavailable:
            logger.warning("sweep_skipped reason=store_unavailable")
            observe_sweep("store_unavailable")
            return 0

        deleted = 0
        for record in expired:
            blob = record.blob_ref
            try:
                if destroy_record(
                    self.store,
                    self.blobs,
                    record.slug,
                    blob.path if blob else None,
                    trigger="expiry",
                ):
                    deleted += 1
            except Exception:
                # One bad record must not stall the rest; it is retried next pass.
                logger.exception("sweep_record_failed slug=%s", record.slug)

        if deleted:
            logger.info("sweep_done deleted=%s scanned=%s", deleted, len(expired))
        observe_sweep("ok")
        return deleted

    def _loop(self) -> None:
        logger.info("Expiry sweeper started (every %ss)", self.interval_seconds)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed")
            self._stop.wait(self.interval_seconds)
        logger.info("Expiry sweeper stopped")

    def start(self) -> None:
        with self._lock:
            if self.running:
                logger.warning("Expiry sweeper already running; skipping start.")
                return
            self._stop.clear()
            t = threading.Thread(target=self._loop, name="lv-expiry-sweeper", daemon=True)
            self._thread = t
            t.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            self._stop.set()
            t = self._thread
            self._thread = None
        if t is not None:
            t.join(timeout)
