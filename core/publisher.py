"""
Tally publisher.

Relays the freshest TallySnapshot to a sink without flooding it:

- A single pending slot (not a queue) is overwritten by every submit()
- The publish cycle takes the slot at most once per debounce interval
- Failed attempts are retried with exponential backoff on the SAME snapshot
  until a newer snapshot shows up or the retry budget is spent
- Rate-limit signals defer the next attempt by the requested delay
- Delivery errors are contained here and only ever logged
- Shutdown waits a bounded grace period, then gives a snapshot left in the
  slot one final attempt if time remains

submit() is safe to call from any thread and never blocks on I/O.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from core.session.models import TallySnapshot
from shared.config.publisher import PublisherConfig
from shared.logging.logger import get_logger
from shared.publishing.base import TallySink
from shared.publishing.errors import (
    PermanentDeliveryError,
    RateLimited,
    TransientDeliveryError,
)

log = get_logger("core.publisher")


@dataclass
class PublishJob:
    snapshot: TallySnapshot
    attempt: int = 0


class TallyPublisher:
    """
    Latest-wins coalescing publisher.

    Lifecycle contract:
    - start() is awaitable and binds to the running loop
    - shutdown() is idempotent and bounded by the configured grace period
    """

    def __init__(self, sink: TallySink, config: Optional[PublisherConfig] = None):
        self._sink = sink
        self._config = config or PublisherConfig()

        self._lock = threading.Lock()
        self._pending: Optional[TallySnapshot] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wake: Optional[asyncio.Event] = None
        self._stopping: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        self._next_attempt_at = 0.0
        self._last_delivered: Optional[Tuple[int, int]] = None

        # --------------------------------------------------
        # METRICS (READ-ONLY, OBSERVATIONAL)
        # --------------------------------------------------
        self._metrics = {
            "attempts": 0,
            "delivered": 0,
            "failed": 0,
            "rate_limited": 0,
            "dropped": 0,
            "abandoned": 0,
            "skipped": 0,
        }

    # ------------------------------------------------------------
    # Ingestion side
    # ------------------------------------------------------------

    def submit(self, snapshot: TallySnapshot) -> None:
        """
        Overwrite the pending slot with the latest snapshot.
        """
        with self._lock:
            self._pending = snapshot
        self._signal_wake()

    def _signal_wake(self) -> None:
        loop = self._loop
        if loop is None or self._wake is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._wake.set()
        else:
            try:
                loop.call_soon_threadsafe(self._wake.set)
            except RuntimeError:
                # Loop closed after the check above; nothing left to wake.
                log.debug("Publisher loop closed; submit not signalled")

    def _has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def _take(self) -> Optional[TallySnapshot]:
        with self._lock:
            snapshot, self._pending = self._pending, None
        self._wake.clear()
        return snapshot

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None:
            log.warning("Publisher already running; ignoring duplicate start")
            return

        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._stopping = asyncio.Event()

        # Snapshots submitted before start() are still published.
        if self._has_pending():
            self._wake.set()

        self._task = asyncio.create_task(self._run())
        log.info(
            f"Publisher started (sink={self._sink.name}, "
            f"debounce={self._config.debounce_interval}s, "
            f"max_retries={self._config.max_retries})"
        )

    async def shutdown(self, grace: Optional[float] = None) -> None:
        if self._closed:
            return
        self._closed = True

        grace = self._config.shutdown_grace if grace is None else grace

        if self._task is not None:
            deadline = self._loop.time() + grace
            self._stopping.set()
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
            except asyncio.TimeoutError:
                log.warning(
                    f"Publish attempt still in flight after {grace}s; abandoning it"
                )
                self._task.cancel()
                await asyncio.gather(self._task, return_exceptions=True)
            else:
                await self._flush(deadline)

        try:
            await self._sink.aclose()
        except Exception as e:
            log.warning(f"Sink close error ignored: {e}")

        log.info(f"Publisher stopped: {self.get_metrics()}")

    async def _flush(self, deadline: float) -> None:
        """
        One last attempt for a snapshot that arrived after the cycle stopped.
        Bounded by the shutdown deadline; failures are logged, not retried.
        """
        snapshot = self._take()
        if snapshot is None or snapshot.key == self._last_delivered:
            return

        delay = max(0.0, self._next_attempt_at - self._loop.time())
        remaining = deadline - self._loop.time() - delay
        if remaining <= 0:
            log.warning(f"No time left to publish final snapshot {snapshot.key}")
            return

        if delay > 0:
            await asyncio.sleep(delay)

        self._metrics["attempts"] += 1
        try:
            await asyncio.wait_for(
                self._sink.send(snapshot),
                timeout=min(self._config.attempt_timeout, remaining),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._metrics["failed"] += 1
            log.warning(
                f"Final snapshot {snapshot.key} not published: {str(e) or type(e).__name__}"
            )
            return

        self._last_delivered = snapshot.key
        self._metrics["delivered"] += 1
        log.info(f"Published final snapshot {snapshot.key}: {snapshot.to_document()}")

    # ------------------------------------------------------------
    # Read-only visibility
    # ------------------------------------------------------------

    def get_metrics(self) -> Dict[str, int]:
        return dict(self._metrics)

    @property
    def last_delivered(self) -> Optional[Tuple[int, int]]:
        return self._last_delivered

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------
    # Publish cycle
    # ------------------------------------------------------------

    async def _run(self) -> None:
        while not self._stopping.is_set():
            if not self._has_pending():
                # Clear before re-checking so a concurrent submit always
                # leaves the event set.
                self._wake.clear()
                if self._has_pending():
                    continue
                await self._wait(None, self._wake, self._stopping)
                continue

            # Debounce: new submits during this wait only overwrite the slot.
            delay = self._next_attempt_at - self._loop.time()
            if delay > 0:
                await self._wait(delay, self._stopping)
                continue

            snapshot = self._take()
            if snapshot is None:
                continue

            try:
                await self._deliver(PublishJob(snapshot=snapshot))
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception(f"Publish cycle error for snapshot {snapshot.key}")

    async def _deliver(self, job: PublishJob) -> None:
        snapshot = job.snapshot

        if snapshot.key == self._last_delivered:
            self._metrics["skipped"] += 1
            log.debug(f"Snapshot {snapshot.key} already delivered; skipping")
            return

        failures = 0

        while True:
            job.attempt += 1
            self._metrics["attempts"] += 1
            self._next_attempt_at = self._loop.time() + self._config.debounce_interval
            retry_at = self._next_attempt_at

            try:
                await asyncio.wait_for(
                    self._sink.send(snapshot),
                    timeout=self._config.attempt_timeout,
                )

            except RateLimited as e:
                # Gates every next attempt, including newer snapshots.
                self._metrics["rate_limited"] += 1
                self._defer(e.retry_after)
                log.warning(
                    f"Sink rate limited snapshot {snapshot.key}; "
                    f"waiting {e.retry_after:.2f}s"
                )

            except PermanentDeliveryError as e:
                self._metrics["failed"] += 1
                log.warning(
                    f"Snapshot {snapshot.key} rejected by sink, not retrying: {e}"
                )
                return

            except asyncio.CancelledError:
                raise

            except Exception as e:
                self._metrics["failed"] += 1
                failures += 1

                if not isinstance(e, (TransientDeliveryError, asyncio.TimeoutError)):
                    log.exception(f"Unexpected sink error for snapshot {snapshot.key}")
                else:
                    log.warning(
                        f"Publish attempt {job.attempt} for snapshot {snapshot.key} "
                        f"failed: {str(e) or type(e).__name__}"
                    )

                if failures > self._config.max_retries:
                    self._metrics["dropped"] += 1
                    log.error(
                        f"Dropping snapshot {snapshot.key} after "
                        f"{self._config.max_retries} retries"
                    )
                    return

                # Backoff only delays this chain; a newer snapshot is not held to it.
                retry_at = self._loop.time() + self._config.backoff.delay_for(failures)

            else:
                self._last_delivered = snapshot.key
                self._metrics["delivered"] += 1
                log.info(
                    f"Published snapshot {snapshot.key} "
                    f"(attempt {job.attempt}): {snapshot.to_document()}"
                )
                return

            if not await self._hold_for_retry(retry_at):
                self._metrics["abandoned"] += 1
                log.info(f"Abandoning retries for snapshot {snapshot.key}")
                return

    # ------------------------------------------------------------
    # Timing helpers
    # ------------------------------------------------------------

    def _defer(self, delay: float) -> None:
        self._next_attempt_at = max(self._next_attempt_at, self._loop.time() + delay)

    def _superseded(self) -> bool:
        return self._has_pending() or self._stopping.is_set()

    async def _hold_for_retry(self, retry_at: float) -> bool:
        """
        Wait until the retry is due.

        Returns False when the retry chain should be abandoned: a newer
        snapshot is pending or the publisher is stopping.
        """
        while not self._superseded():
            delay = max(retry_at, self._next_attempt_at) - self._loop.time()
            if delay <= 0:
                return True

            self._wake.clear()
            if self._has_pending():
                return False
            await self._wait(delay, self._wake, self._stopping)

        return False

    async def _wait(self, timeout: Optional[float], *events: asyncio.Event) -> None:
        waiters = [asyncio.create_task(event.wait()) for event in events]
        try:
            await asyncio.wait(
                waiters,
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
