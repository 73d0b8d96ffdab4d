"""
ActivityQueue — durable, bounded, ordered buffer of undelivered activities.

Stored as one JSON list under QUEUE_KEY; every change rewrites the whole list
while holding the queue lock, so the stored list is always complete.

flush() claims the stored events (read and remove in one locked step) before
any network call. A second flush that races the first finds nothing to send.
Claimed events are posted in batches of `batch_size`, each batch concurrently
on a small thread pool, batches in enqueue order. A failed event is requeued
on its own; its siblings are unaffected. Nothing raised by delivery or by
storage escapes flush(): failures become requeues (or drops, see _on_failure)
and log lines. A storage error while claiming skips the flush so the stored
events are not sent twice.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from .config import log
from .constants import FLUSH_BATCH_SIZE, MAX_DELIVERY_ATTEMPTS, QUEUE_CAPACITY, QUEUE_KEY
from .errors import ApiError, ErrorCode
from .state import QueuedEvent


@dataclass
class FlushResult:
    delivered: int = 0
    requeued: int = 0
    dropped: int = 0

    @property
    def attempted(self):
        return self.delivered + self.requeued + self.dropped


class ActivityQueue:
    def __init__(self, storage, api, connectivity, capacity=QUEUE_CAPACITY,
                 batch_size=FLUSH_BATCH_SIZE, max_attempts=MAX_DELIVERY_ATTEMPTS,
                 key=QUEUE_KEY):
        if capacity < 1 or batch_size < 1:
            raise ValueError("capacity and batch_size must be positive")
        self._storage = storage
        self._api = api
        self._connectivity = connectivity
        self._capacity = capacity
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._key = key
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def capacity(self):
        return self._capacity

    # ── Storage ──────────────────────────────────────────────

    def _read(self):
        """Stored events in order. A corrupt list is discarded."""
        try:
            raw = self._storage.get(self._key)
        except OSError as e:
            log.warning("Activity queue unreadable: %s", e)
            return []
        if not raw:
            return []
        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise ValueError("queue is not a list")
        except ValueError as e:
            log.warning("%s: discarding activity queue (%s)", ErrorCode.CORRUPT_LOCAL_STATE, e)
            try:
                self._storage.remove(self._key)
            except OSError as err:
                log.error("Failed to discard activity queue: %s", err)
            return []

        events = []
        for record in records:
            try:
                events.append(QueuedEvent.from_record(record))
            except (ValueError, TypeError) as e:
                log.warning("%s: skipping queued event (%s)", ErrorCode.CORRUPT_LOCAL_STATE, e)
        return events

    def _write(self, events):
        if events:
            self._storage.set(self._key, json.dumps([e.to_record() for e in events]))
        else:
            self._storage.remove(self._key)

    # ── Public API ───────────────────────────────────────────

    def enqueue(self, event):
        """Append an event (Activity or QueuedEvent), evicting the oldest past capacity.

        Returns the stored QueuedEvent, or None when storage could not be written.
        """
        if not isinstance(event, QueuedEvent):
            event = QueuedEvent.from_activity(event)
        return event if self._append(event) else None

    def _append(self, event, generation=None):
        with self._lock:
            if generation is not None and generation != self._generation:
                log.info("Activity queue cleared during flush; not requeueing %s", event.type)
                return False
            events = self._read()
            events.append(event)
            overflow = len(events) - self._capacity
            if overflow > 0:
                log.warning("Activity queue full — dropping %d oldest event(s)", overflow)
                events = events[overflow:]
            try:
                self._write(events)
            except OSError as e:
                log.error("Failed to persist activity queue, %s lost: %s", event.type, e)
                return False
        log.debug("Queued activity %s (%d pending)", event.type, len(events))
        return True

    def peek_all(self):
        with self._lock:
            return self._read()

    def clear(self):
        """Forget every pending event, including requeues of a flush in progress."""
        with self._lock:
            self._generation += 1
            try:
                self._storage.remove(self._key)
            except OSError as e:
                log.error("Failed to clear activity queue: %s", e)

    def __len__(self):
        return len(self.peek_all())

    def _claim(self):
        """Take every stored event. Returns ([], gen) if they could not be removed."""
        with self._lock:
            events = self._read()
            if events:
                try:
                    self._storage.remove(self._key)
                except OSError as e:
                    log.error("Cannot claim activity queue, skipping flush: %s", e)
                    events = []
            return events, self._generation

    def flush(self):
        """Deliver everything queued right now. Never raises for delivery failures."""
        result = FlushResult()
        if not self._connectivity.online:
            return result

        events, generation = self._claim()
        if not events:
            return result

        log.info("Flushing %d queued activities", len(events))
        workers = min(self._batch_size, len(events))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="flush") as pool:
            for start in range(0, len(events), self._batch_size):
                batch = events[start:start + self._batch_size]
                outcomes = list(pool.map(self._deliver, batch))
                for event, error in zip(batch, outcomes):
                    if error is None:
                        result.delivered += 1
                    elif self._on_failure(event, error, generation):
                        result.requeued += 1
                    else:
                        result.dropped += 1

        log.info(
            "Flush done: %d delivered, %d requeued, %d dropped",
            result.delivered, result.requeued, result.dropped,
        )
        return result

    def _deliver(self, event):
        """Post one event; returns None on success, the failure otherwise."""
        try:
            self._api.post_activity(event.to_activity())
            return None
        except ApiError as e:
            return e
        except Exception as e:
            log.error("Unexpected error delivering %s: %s", event.type, e, exc_info=True)
            return ApiError(ErrorCode.SERVER_ERROR, str(e))

    def _on_failure(self, event, error, generation=None):
        """Requeue a failed event unless it can never succeed. Returns True if requeued."""
        if error.code == ErrorCode.VALIDATION_ERROR:
            log.warning("Dropping activity %s rejected by server: %s", event.type, error.message)
            return False
        event.attempts += 1
        if event.attempts >= self._max_attempts:
            log.warning(
                "Dropping activity %s after %d failed deliveries: %s",
                event.type, event.attempts, error.message,
            )
            return False
        if not self._append(event, generation):
            return False
        log.warning("Failed to deliver queued %s (%s) — requeued", event.type, error.code)
        return True
