"""Tests for the result-returning collaboration facade."""

import pytest
from structlog.testing import capture_logs

from taskmarket.core.auth import StaticAuthContext
from taskmarket.core.errors import StoreUnavailable, run_operation
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.common import ErrorKind, NegotiationState
from taskmarket_shared.schemas.tasks import TaskCreate


async def test_anonymous_actor_is_rejected(store, task):
    anonymous = CollaborationService(store, StaticAuthContext(None))

    for result in (
        await anonymous.create_task(TaskCreate(title="Sneaky")),
        await anonymous.apply_for_task(task.id, "Hi"),
        await anonymous.complete_task(task.id, 5),
        await anonymous.respond_location("c1", True, task.id),
        await anonymous.send_message("c1", "hello"),
        await anonymous.watch_unread(lambda summary: None),
    ):
        assert not result.ok
        assert result.error.kind == ErrorKind.UNAUTHENTICATED
        assert result.error.message == "Sign in required"

    assert store.feed.active_count() == 0


async def test_failures_are_results_not_exceptions(as_user, task):
    result = await as_user("bob").get_task("missing")
    assert not result.ok
    assert result.error.kind == ErrorKind.NOT_FOUND
    assert result.error.message == "Task not found"

    result = await as_user("alice").apply_for_task(task.id, "Me")
    assert result.error.kind == ErrorKind.PRECONDITION_FAILED


async def test_store_errors_surface_as_unavailable(store, as_user, task, monkeypatch):
    async def broken_get(collection, doc_id):
        raise StoreUnavailable("Document store unavailable")

    monkeypatch.setattr(store, "get", broken_get)

    result = await as_user("bob").apply_for_task(task.id, "Hi")
    assert not result.ok
    assert result.error.kind == ErrorKind.STORE_UNAVAILABLE


async def test_end_to_end_flow(as_user, task):
    alice, bob = as_user("alice"), as_user("bob")

    applied = (await bob.apply_for_task(task.id, "Hi", applicant_name="Bob")).value
    again = await bob.apply_for_task(task.id, "Hi again")
    assert again.value.chat_id == applied.chat_id

    assert (await alice.accept_application(applied.application_id)).ok
    await alice.request_location(applied.chat_id)
    assert (await alice.location_state(applied.chat_id)).value == NegotiationState.REQUESTED

    shared = await bob.respond_location(applied.chat_id, True, task.id)
    assert shared.value.shared is True

    done = await alice.complete_task(task.id, 5, "Thanks Bob")
    assert done.ok and done.value.reviewee_id == "bob"

    reviews = await alice.list_user_reviews("bob")
    assert [r.rating for r in reviews.value] == [5]

    messages = (await bob.list_messages(applied.chat_id)).value
    assert messages[0].content == "Hi"
    assert messages[-1].sender_id == "system"


async def test_subscription_returns_unsubscribe_handle(store, as_user, chat_id, deliveries):
    seen = deliveries()
    result = await as_user("alice").subscribe_messages(chat_id, seen)
    assert result.ok
    await seen.next()

    result.value()
    assert store.feed.active_count() == 0

    outsider = await as_user("mallory").subscribe_messages(chat_id, seen)
    assert outsider.error.kind == ErrorKind.PRECONDITION_FAILED


async def test_unexpected_errors_become_internal_results():
    async def explode():
        raise ValueError("boom")

    with capture_logs() as logs:
        result = await run_operation("explode", explode())

    assert not result.ok
    assert result.error.kind == ErrorKind.INTERNAL
    assert "boom" not in result.error.message
    assert logs[0]["event"] == "operation.crashed"
    assert logs[0]["operation"] == "explode"


@pytest.mark.parametrize("user_id", ["john.doe", "a.b.c"])
async def test_user_ids_with_dots(store, as_user, task, user_id):
    helper, alice = as_user(user_id), as_user("alice")

    applied = await helper.apply_for_task(task.id, "Hi", applicant_name="John")
    assert applied.ok, applied.error
    chat_id = applied.value.chat_id

    assert (await helper.send_message(chat_id, "I can come by tomorrow")).ok
    chat = (await store.get("chats", chat_id)).data
    assert user_id in chat["last_read_by"]
    assert user_id.split(".")[0] not in chat["last_read_by"]

    unread = await helper.unread_summary()
    assert unread.ok, unread.error
    assert unread.value.count == 0
    assert (await alice.unread_summary()).value.chat_ids == [chat_id]

    assert (await alice.send_message(chat_id, "Great")).ok
    assert (await helper.unread_summary()).value.chat_ids == [chat_id]
    assert (await helper.mark_read(chat_id)).ok
    assert (await helper.unread_summary()).value.count == 0


async def test_location_state_is_for_participants_only(as_user, chat_id):
    await as_user("alice").request_location(chat_id)

    result = await as_user("mallory").location_state(chat_id)
    assert not result.ok
    assert result.error.kind == ErrorKind.PRECONDITION_FAILED

    assert (await as_user("bob").location_state(chat_id)).value == NegotiationState.REQUESTED


async def test_applications_are_listed_by_access(as_user, task, applied):
    await as_user("carol").apply_for_task(task.id, "Me too")

    everyone = await as_user("alice").list_applications(task.id)
    assert [a.applicant_id for a in everyone.value] == ["bob", "carol"]

    own = await as_user("bob").list_applications(task.id)
    assert [a.applicant_id for a in own.value] == ["bob"]
    assert own.value[0].message == "Hi"

    assert (await as_user("mallory").list_applications(task.id)).value == []
