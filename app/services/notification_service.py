"""
Notification Service

PURPOSE:
Tell students what happened to them (new drive, application received,
shortlisted, rejected, status changed) without ever holding up or
failing the operation that caused it.

HOW IT WORKS:
1. Services call NotificationDispatcher.notify() AFTER their database
   transaction has committed
2. notify() only enqueues a NotificationEvent and returns
3. A daemon worker drains the queue and hands each event to every sink
4. A sink failure is logged as an ExternalServiceException and dropped

Sinks:
- MongoNotificationStore: in-app feed in the `notifications` collection
"""

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from bson import ObjectId
from loguru import logger
from pymongo.collection import Collection

from app.core.config import get_settings
from app.core.exceptions import ExternalServiceException
from app.db.mongodb import get_collection, COLLECTIONS
from app.models.domain import NotificationSeverity


@dataclass(frozen=True)
class NotificationEvent:
    student_ids: List[int]
    message: str
    severity: NotificationSeverity = NotificationSeverity.info
    link: Optional[str] = None
    related_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# SINKS
# ============================================================

class MongoNotificationStore:
    """
    In-app notification feed.
    One document per (student, event).
    """

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["notifications"])

    def deliver(self, event: NotificationEvent) -> None:
        docs = [
            {
                "student_id": sid,
                "message": event.message,
                "type": event.severity.value,
                "link": event.link,
                "related_id": event.related_id,
                "read": False,
                "created_at": event.created_at,
            }
            for sid in event.student_ids
        ]
        try:
            self.collection.insert_many(docs, ordered=False)
        except Exception as e:
            raise ExternalServiceException(f"Failed to store notifications: {e}") from e

    def list_for_student(self, student_id: int, limit: int = 50) -> List[dict]:
        """Newest first."""
        cursor = self.collection.find(
            {"student_id": student_id},
            sort=[("created_at", -1)],
            limit=limit
        )
        return [self._serialize(doc) for doc in cursor]

    def mark_read(self, student_id: int, notification_id: str) -> bool:
        if not ObjectId.is_valid(notification_id):
            return False
        result = self.collection.update_one(
            {"_id": ObjectId(notification_id), "student_id": student_id},
            {"$set": {"read": True}}
        )
        return result.matched_count > 0

    @staticmethod
    def _serialize(doc: dict) -> dict:
        doc["id"] = str(doc.pop("_id"))
        return doc


# ============================================================
# DISPATCHER
# ============================================================

_STOP = object()


class NotificationDispatcher:
    """
    Fire-and-forget outbound channel.

    notify() never raises and never waits for delivery.
    """

    def __init__(self, sinks: Iterable = ()):
        self._sinks = list(sinks)
        self._queue: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    @property
    def sinks(self) -> list:
        return list(self._sinks)

    def notify(
        self,
        student_ids: Iterable[int],
        message: str,
        severity: NotificationSeverity = NotificationSeverity.info,
        link: Optional[str] = None,
        related_id: Optional[int] = None
    ) -> None:
        try:
            ids = sorted(set(student_ids))
            if not ids or not self._sinks:
                return
            self._ensure_worker()
            self._queue.put(NotificationEvent(
                student_ids=ids,
                message=message,
                severity=NotificationSeverity(severity),
                link=link,
                related_id=related_id,
            ))
        except Exception as e:
            logger.error(f"Could not enqueue notification '{message}': {e}")

    def flush(self) -> None:
        """Block until every queued event has been handled."""
        self._queue.join()

    def stop(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            self._queue.put(_STOP)
            self._worker.join(timeout=5)
        self._worker = None

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name="notification-dispatcher", daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is _STOP:
                    return
                self._deliver(event)
            finally:
                self._queue.task_done()

    def _deliver(self, event: NotificationEvent) -> None:
        for sink in self._sinks:
            try:
                sink.deliver(event)
            except Exception as e:
                logger.error(
                    f"Notification delivery via {type(sink).__name__} failed "
                    f"for {len(event.student_ids)} students: {e}"
                )


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

_dispatcher: Optional[NotificationDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> NotificationDispatcher:
    """Get the process-wide dispatcher, wiring the Mongo store on first use."""
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            settings = get_settings()
            sinks = [MongoNotificationStore()] if settings.notifications_enabled else []
            _dispatcher = NotificationDispatcher(sinks)
        return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Replace the process-wide dispatcher (startup wiring and tests)."""
    global _dispatcher
    with _dispatcher_lock:
        previous = _dispatcher
        _dispatcher = dispatcher
    if previous is not None and previous is not dispatcher:
        previous.stop()


def get_notification_store() -> MongoNotificationStore:
    """Get notification store instance."""
    return MongoNotificationStore()
