"""Tests for the location negotiation sub-protocol."""

import pytest

from taskmarket.core.errors import PreconditionFailed, StoreUnavailable
from taskmarket.services.location import LocationNegotiation, negotiation_state, pending_request
from taskmarket.services.messages import MessageStream
from taskmarket.services.tasks import TaskService
from taskmarket_shared.schemas.chats import MessageRead
from taskmarket_shared.schemas.common import MessageType, NegotiationState
from taskmarket_shared.schemas.tasks import TaskCreate


def _negotiation(store, messages=None):
    messages = messages or MessageStream(store)
    return LocationNegotiation(store, messages, TaskService(store))


async def _types(store, chat_id):
    return [m.type for m in await MessageStream(store).list_messages(chat_id)]


async def test_request_then_approve_shares_location(store, task, chat_id):
    negotiation = _negotiation(store)

    await negotiation.request(chat_id, "alice")
    shared = await negotiation.respond(chat_id, "bob", True, task.id)

    assert shared is True
    assert (await TaskService(store).get_task(task.id)).location_shared is True

    listed = await MessageStream(store).list_messages(chat_id)
    assert [m.type for m in listed[1:]] == [
        MessageType.LOCATION_REQUEST,
        MessageType.LOCATION_RESPONSE,
        MessageType.LOCATION_SHARED,
    ]
    assert listed[2].approved is True
    assert listed[3].location.address == "12 Oak Street"
    assert listed[3].location.coordinates.lat == 52.37
    assert listed[3].sender_id == "alice"
    assert negotiation_state(listed) == NegotiationState.SHARED


async def test_request_then_decline(store, task, chat_id):
    negotiation = _negotiation(store)

    await negotiation.request(chat_id, "alice")
    shared = await negotiation.respond(chat_id, "bob", False, task.id)

    assert shared is False
    assert (await TaskService(store).get_task(task.id)).location_shared is False

    listed = await MessageStream(store).list_messages(chat_id)
    assert [m.type for m in listed[1:]] == [
        MessageType.LOCATION_REQUEST,
        MessageType.LOCATION_RESPONSE,
    ]
    assert listed[2].approved is False
    assert negotiation_state(listed) == NegotiationState.DECLINED


async def test_declined_negotiation_can_be_reopened(store, task, chat_id):
    negotiation = _negotiation(store)
    await negotiation.request(chat_id, "bob")
    await negotiation.respond(chat_id, "alice", False, task.id)

    await negotiation.request(chat_id, "bob")
    listed = await MessageStream(store).list_messages(chat_id)
    assert negotiation_state(listed) == NegotiationState.REQUESTED

    assert await negotiation.respond(chat_id, "alice", True, task.id) is True


async def test_gate_is_monotonic_once_shared(store, task, chat_id):
    negotiation = _negotiation(store)
    await negotiation.request(chat_id, "alice")
    await negotiation.respond(chat_id, "bob", True, task.id)
    before = await _types(store, chat_id)

    with pytest.raises(PreconditionFailed, match="already been shared"):
        await negotiation.request(chat_id, "bob")

    # Responding again is a no-op
    assert await negotiation.respond(chat_id, "bob", True, task.id) is False
    assert await negotiation.respond(chat_id, "alice", False, task.id) is False
    assert await _types(store, chat_id) == before


async def test_requester_cannot_answer_own_request(store, task, chat_id):
    negotiation = _negotiation(store)
    await negotiation.request(chat_id, "alice")

    with pytest.raises(PreconditionFailed, match="your own"):
        await negotiation.respond(chat_id, "alice", True, task.id)


async def test_respond_without_pending_request(store, task, chat_id):
    with pytest.raises(PreconditionFailed, match="no pending"):
        await _negotiation(store).respond(chat_id, "bob", True, task.id)


async def test_outsider_cannot_request_or_respond(store, task, chat_id):
    negotiation = _negotiation(store)
    with pytest.raises(PreconditionFailed):
        await negotiation.request(chat_id, "mallory")

    await negotiation.request(chat_id, "alice")
    with pytest.raises(PreconditionFailed):
        await negotiation.respond(chat_id, "mallory", True, task.id)


async def test_respond_with_wrong_task(store, as_user, task, chat_id):
    other = await as_user("alice").create_task(TaskCreate(title="Walk the dog"))
    negotiation = _negotiation(store)
    await negotiation.request(chat_id, "alice")

    with pytest.raises(PreconditionFailed, match="does not belong"):
        await negotiation.respond(chat_id, "bob", True, other.value.id)


async def test_fallback_address(store, as_user):
    created = await as_user("carol").create_task(TaskCreate(title="Move a sofa"))
    applied = await as_user("dave").apply_for_task(created.value.id, "I have a van")
    chat_id = applied.value.chat_id

    negotiation = LocationNegotiation(
        store, MessageStream(store), TaskService(store), fallback_address="Ask in chat"
    )
    await negotiation.request(chat_id, "dave")
    assert await negotiation.respond(chat_id, "carol", True, created.value.id) is True

    shared = (await MessageStream(store).list_messages(chat_id))[-1]
    assert shared.location.address == "Ask in chat"
    assert shared.location.coordinates is None


async def test_failed_share_leaves_task_untouched(store, task, chat_id):
    class FailingShare(MessageStream):
        async def append(self, chat_id, sender_id, message_type, payload=None, *, visible_to=None):
            if MessageType(message_type) == MessageType.LOCATION_SHARED:
                raise StoreUnavailable("Document store unavailable")
            return await super().append(
                chat_id, sender_id, message_type, payload, visible_to=visible_to
            )

    negotiation = _negotiation(store, FailingShare(store))
    await negotiation.request(chat_id, "alice")

    with pytest.raises(StoreUnavailable):
        await negotiation.respond(chat_id, "bob", True, task.id)

    assert (await TaskService(store).get_task(task.id)).location_shared is False
    assert MessageType.LOCATION_SHARED not in await _types(store, chat_id)


async def test_shared_location_notifies_requester(store, as_user, task, chat_id):
    service = as_user("alice")
    await service.request_location(chat_id)
    result = await as_user("bob").respond_location(chat_id, True, task.id)
    assert result.ok and result.value.shared is True

    notes = await store.query("notifications")
    assert any(n.get("type") == "location_shared" and n.get("user_id") == "alice" for n in notes)


# ---------------------------------------------------------------------------
# Pure state derivation
# ---------------------------------------------------------------------------


def _msg(i, type_, sender="a", **kw):
    return MessageRead(id=str(i), chat_id="c", sender_id=sender, type=type_, **kw)


def test_negotiation_state_from_messages():
    assert negotiation_state([]) == NegotiationState.NONE
    assert negotiation_state([_msg(1, MessageType.TEXT, content="hi")]) == NegotiationState.NONE

    stream = [_msg(1, MessageType.LOCATION_REQUEST)]
    assert negotiation_state(stream) == NegotiationState.REQUESTED

    stream.append(_msg(2, MessageType.LOCATION_RESPONSE, sender="b", approved=False))
    assert negotiation_state(stream) == NegotiationState.DECLINED
    assert pending_request(stream) is None

    stream.append(_msg(3, MessageType.LOCATION_REQUEST, sender="b"))
    assert negotiation_state(stream) == NegotiationState.REQUESTED
    assert pending_request(stream).id == "3"
