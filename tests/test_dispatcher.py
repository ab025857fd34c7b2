from __future__ import annotations

import threading

import pytest
from sqlalchemy import event

from villages.application.use_cases.notifications import NotificationDispatcher
from villages.domain.entities import (
    NotificationContent,
    NotificationType,
    RenderContext,
    user_topic,
)
from villages.domain.errors import StoreUnavailableError
from villages.infrastructure.models import NotificationModel
from villages.infrastructure.repositories import NotificationRepository


class FlakyRepository(NotificationRepository):
    """Fails record creation for the configured recipients."""

    def __init__(self, session, failing=()):
        super().__init__(session)
        self.failing = set(failing)
        self.created_for: list[str] = []

    def create(self, recipient_id, *args, **kwargs):
        if recipient_id in self.failing:
            raise StoreUnavailableError("Database connection error: connection refused")
        self.created_for.append(recipient_id)
        return super().create(recipient_id, *args, **kwargs)


class BrokenPublisher:
    async def push_content(self, *args, **kwargs):
        raise ConnectionResetError("channel closed")

    async def push_notification(self, *args, **kwargs):
        raise ConnectionResetError("channel closed")

    async def push_unread_count(self, *args, **kwargs):
        raise ConnectionResetError("channel closed")

    async def push_notification_read(self, *args, **kwargs):
        raise ConnectionResetError("channel closed")

    async def push_all_read(self, *args, **kwargs):
        raise ConnectionResetError("channel closed")


CONTENT = NotificationContent(
    title="New message from Alice",
    message="Are you coming on Sunday?",
    data={"conversationId": "conv-1"},
    action_url="/messages/conv-1",
    is_actionable=True,
)


@pytest.fixture
def repository(db_session):
    return FlakyRepository(db_session)


@pytest.fixture
def dispatcher(repository, realtime):
    return NotificationDispatcher(repository, realtime.registry, realtime.publisher)


@pytest.mark.anyio
async def test_recipient_viewing_origin_topic_gets_live_push_only(
    dispatcher, repository, realtime, make_transport
):
    personal = make_transport()
    realtime.manager.attach("conv-1", "bob", make_transport())
    realtime.manager.attach(user_topic("bob"), "bob", personal)

    result = await dispatcher.dispatch_notification(
        "bob", NotificationType.MESSAGE, CONTENT, RenderContext(origin_topic_id="conv-1")
    )

    assert result.success and result.sse_delivered and not result.persisted
    assert result.notification_id is None
    assert repository.created_for == []
    assert personal.types() == ["notification"]
    assert personal.messages[0]["data"]["id"] is None


@pytest.mark.anyio
async def test_recipient_live_elsewhere_still_gets_a_record(
    dispatcher, repository, realtime, make_transport
):
    personal = make_transport()
    realtime.manager.attach("conv-2", "bob", make_transport())
    realtime.manager.attach(user_topic("bob"), "bob", personal)

    result = await dispatcher.dispatch_notification(
        "bob", NotificationType.MESSAGE, CONTENT, RenderContext(origin_topic_id="conv-1")
    )

    assert result.success and result.persisted and result.sse_delivered
    assert result.notification_id is not None
    assert personal.types() == ["notification", "unread-count"]
    assert personal.messages[0]["data"]["id"] == result.notification_id
    assert personal.messages[1]["data"] == {"count": 1}


@pytest.mark.anyio
async def test_offline_recipient_is_persisted(dispatcher, repository):
    result = await dispatcher.dispatch_notification(
        "bob", NotificationType.CARE_UPDATE, CONTENT
    )

    assert result.success and result.persisted
    assert repository.get_unread_count("bob") == 1


@pytest.mark.anyio
async def test_bulk_dispatch_isolates_failures(repository, realtime, make_transport):
    repository.failing = {"carol"}
    dispatcher = NotificationDispatcher(repository, realtime.registry, realtime.publisher)
    realtime.manager.attach("conv-1", "alice", make_transport())

    batch = await dispatcher.dispatch_bulk(
        ["alice", "bob", "carol"],
        NotificationType.MESSAGE,
        CONTENT,
        RenderContext(origin_topic_id="conv-1"),
    )

    assert [result.recipient_id for result in batch.results] == ["alice", "bob", "carol"]
    alice, bob, carol = batch.results
    assert alice.sse_delivered and not alice.persisted
    assert bob.success and bob.persisted
    assert not carol.success and not carol.persisted
    assert carol.error.startswith("Persistence failed")
    assert batch.success_count == 2 and batch.failure_count == 1


@pytest.fixture
def reject_inserts_for():
    rejected: set[str] = set()

    def before_insert(mapper, connection, target):
        if target.recipient_id in rejected:
            raise ValueError(f"constraint violated for {target.recipient_id}")

    event.listen(NotificationModel, "before_insert", before_insert)
    yield rejected
    event.remove(NotificationModel, "before_insert", before_insert)


@pytest.mark.anyio
async def test_failed_insert_does_not_poison_later_recipients(
    dispatcher, repository, reject_inserts_for
):
    reject_inserts_for.add("carol")

    batch = await dispatcher.dispatch_bulk(
        ["carol", "bob", "dave"], NotificationType.MESSAGE, CONTENT
    )

    carol, bob, dave = batch.results
    assert not carol.persisted
    assert "constraint violated for carol" in carol.error
    assert bob.persisted and dave.persisted
    assert repository.get_unread_count("bob") == 1
    assert repository.get_unread_count("dave") == 1


@pytest.mark.anyio
async def test_bulk_dispatch_deduplicates_recipients(dispatcher, repository):
    batch = await dispatcher.dispatch_bulk(
        ["bob", "bob", "", "dave"], NotificationType.MESSAGE, CONTENT
    )

    assert [result.recipient_id for result in batch.results] == ["bob", "dave"]
    assert repository.created_for == ["bob", "dave"]


@pytest.mark.anyio
async def test_push_failure_does_not_undo_persistence(repository, realtime):
    dispatcher = NotificationDispatcher(repository, realtime.registry, BrokenPublisher())

    result = await dispatcher.dispatch_notification("bob", NotificationType.MESSAGE, CONTENT)

    assert result.success and result.persisted
    assert not result.sse_delivered
    assert result.error.startswith("Live push failed")


@pytest.mark.anyio
async def test_failed_live_push_falls_back_to_a_record(repository, realtime, make_transport):
    realtime.manager.attach("conv-1", "bob", make_transport())
    dispatcher = NotificationDispatcher(repository, realtime.registry, BrokenPublisher())

    result = await dispatcher.dispatch_notification(
        "bob", NotificationType.MESSAGE, CONTENT, RenderContext(origin_topic_id="conv-1")
    )

    assert result.success and result.persisted and not result.sse_delivered
    assert repository.created_for == ["bob"]


@pytest.mark.anyio
async def test_mark_all_as_read_notifies_live_channels(
    dispatcher, repository, realtime, make_transport
):
    for _ in range(2):
        await dispatcher.dispatch_notification("bob", NotificationType.MESSAGE, CONTENT)
    personal = make_transport()
    realtime.manager.attach(user_topic("bob"), "bob", personal)

    updated = await dispatcher.mark_all_notifications_as_read("bob")

    assert updated == 2
    assert repository.get_unread_count("bob") == 0
    assert personal.types() == ["all-read", "unread-count"]
    assert personal.messages[1]["data"] == {"count": 0}


@pytest.mark.anyio
async def test_mark_one_as_read_pushes_read_state(
    dispatcher, repository, realtime, make_transport
):
    first = await dispatcher.dispatch_notification("bob", NotificationType.MESSAGE, CONTENT)
    await dispatcher.dispatch_notification("bob", NotificationType.MESSAGE, CONTENT)
    personal = make_transport()
    realtime.manager.attach(user_topic("bob"), "bob", personal)

    notification = await dispatcher.mark_notification_as_read(first.notification_id, "bob")

    assert notification.is_read
    assert personal.types() == ["notification-read", "unread-count"]
    assert personal.messages[1]["data"] == {"count": 1}


class ThreadRecordingRepository(NotificationRepository):
    def __init__(self, session):
        super().__init__(session)
        self.threads: set[int] = set()

    def create(self, *args, **kwargs):
        self.threads.add(threading.get_ident())
        return super().create(*args, **kwargs)

    def get_unread_count(self, user_id):
        self.threads.add(threading.get_ident())
        return super().get_unread_count(user_id)


@pytest.mark.anyio
async def test_store_calls_run_off_the_event_loop_thread(db_session, realtime):
    repository = ThreadRecordingRepository(db_session)
    dispatcher = NotificationDispatcher(repository, realtime.registry, realtime.publisher)

    batch = await dispatcher.dispatch_bulk(["bob", "dave"], NotificationType.MESSAGE, CONTENT)

    assert batch.persisted_count == 2
    assert repository.threads
    assert threading.get_ident() not in repository.threads
