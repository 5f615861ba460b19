"""Dispatcher behaviour, the Mongo store and the notification endpoints."""

from datetime import datetime

import pytest
from bson import ObjectId

from app.api.routes import notification_routes
from app.core.exceptions import ExternalServiceException
from app.models.domain import NotificationSeverity
from app.services.notification_service import (
    MongoNotificationStore, NotificationDispatcher, NotificationEvent
)

from tests.conftest import FailingSink, RecordingSink


class TestDispatcher:

    def test_delivers_to_every_sink(self):
        first, second = RecordingSink(), RecordingSink()
        dispatcher = NotificationDispatcher([first, second])

        dispatcher.notify([3, 1, 3], "Hello", NotificationSeverity.success, "/x", 7)
        dispatcher.flush()
        dispatcher.stop()

        for sink in (first, second):
            assert len(sink.events) == 1
            event = sink.events[0]
            assert event.student_ids == [1, 3]
            assert (event.message, event.severity, event.link, event.related_id) == (
                "Hello", NotificationSeverity.success, "/x", 7
            )

    def test_failing_sink_does_not_block_others(self):
        failing, recording = FailingSink(), RecordingSink()
        dispatcher = NotificationDispatcher([failing, recording])

        dispatcher.notify([1], "first")
        dispatcher.notify([2], "second")
        dispatcher.flush()
        dispatcher.stop()

        assert failing.calls == 2
        assert [e.message for e in recording.events] == ["first", "second"]

    def test_nothing_to_send(self):
        recording = RecordingSink()
        dispatcher = NotificationDispatcher([recording])

        dispatcher.notify([], "nobody")
        dispatcher.flush()

        assert recording.events == []

    def test_bad_severity_is_logged_not_raised(self):
        dispatcher = NotificationDispatcher([RecordingSink()])
        dispatcher.notify([1], "odd", severity="critical")
        dispatcher.flush()


class FakeCollection:

    def __init__(self, fail=False):
        self.fail = fail
        self.docs = []

    def insert_many(self, docs, ordered=True):
        if self.fail:
            raise RuntimeError("connection refused")
        self.docs.extend(docs)


def store_with(collection):
    store = MongoNotificationStore.__new__(MongoNotificationStore)
    store.collection = collection
    return store


class TestMongoStore:

    def test_one_document_per_student(self):
        collection = FakeCollection()
        event = NotificationEvent(student_ids=[1, 2], message="Shortlisted", related_id=5)

        store_with(collection).deliver(event)

        assert [d["student_id"] for d in collection.docs] == [1, 2]
        assert all(d["read"] is False and d["type"] == "info" for d in collection.docs)

    def test_failure_is_wrapped(self):
        with pytest.raises(ExternalServiceException):
            store_with(FakeCollection(fail=True)).deliver(NotificationEvent(student_ids=[1], message="x"))

    def test_mark_read_rejects_malformed_id(self):
        assert store_with(FakeCollection()).mark_read(1, "not-an-object-id") is False


class FakeStore:

    def __init__(self):
        self.read = []
        self.known_id = str(ObjectId())

    def list_for_student(self, student_id, limit=50):
        return [{
            "id": self.known_id, "student_id": student_id, "message": "Welcome",
            "type": "info", "link": None, "related_id": None, "read": False,
            "created_at": datetime(2026, 1, 1),
        }]

    def mark_read(self, student_id, notification_id):
        self.read.append((student_id, notification_id))
        return notification_id == self.known_id


@pytest.fixture
def fake_store(monkeypatch):
    store = FakeStore()
    monkeypatch.setattr(notification_routes, "get_notification_store", lambda: store)
    return store


def test_list_and_mark_read(client, seed, auth, fake_store):
    user_id, student_id = seed.student()
    headers = auth(user_id)

    listed = client.get("/api/notifications", headers=headers)
    marked = client.put(f"/api/notifications/{fake_store.known_id}/read", headers=headers)
    unknown = client.put(f"/api/notifications/{ObjectId()}/read", headers=headers)

    assert listed.status_code == 200
    assert listed.json()[0]["student_id"] == student_id
    assert marked.status_code == 200
    assert unknown.status_code == 404
    assert fake_store.read[0] == (student_id, fake_store.known_id)


def test_notifications_are_student_only(client, seed, auth, fake_store):
    headers = auth(seed.coordinator())

    assert client.get("/api/notifications", headers=headers).status_code == 403
    assert client.put(f"/api/notifications/{fake_store.known_id}/read", headers=headers).status_code == 403
    assert fake_store.read == []
