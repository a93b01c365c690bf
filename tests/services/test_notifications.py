import logging
from unittest.mock import AsyncMock

import pytest

from lead_crm_svc.models import Inquiry, User, UserRole
from lead_crm_svc.services import notifications
from lead_crm_svc.services.assignment import Transition
from lead_crm_svc.utils.websocket_manager import ConnectionManager


def _inquiry(**kwargs) -> Inquiry:
    fields = dict(id=7, created_by_id=1, assigned_to_id=None)
    fields.update(kwargs)
    return Inquiry(**fields)


ACTOR = User(id=2, role=UserRole.Presales, email="p@example.com", name="P", hashed_password="x")


def test_build_event_dedupes_and_sorts_targets():
    event = notifications.build_event("claim", 3, "hello", [5, None, 2, 5])
    assert event == {"event": "claim", "inquiry_id": 3, "message": "hello", "user_ids": [2, 5]}


def test_created_event_is_broadcast():
    event = notifications.created_event(_inquiry())
    assert event["event"] == notifications.EVENT_CREATED
    assert event["user_ids"] == []


def test_assign_event_targets_assignee_not_actor():
    event = notifications.transition_event(Transition.Assign, _inquiry(assigned_to_id=9), ACTOR, None)
    assert event["user_ids"] == [9]
    assert event["message"] == "Inquiry 7 assigned to you"

    own = notifications.transition_event(Transition.Claim, _inquiry(assigned_to_id=2, created_by_id=2), ACTOR, None)
    assert own["user_ids"] == []


def test_forward_event_targets_previous_owner_and_creator():
    event = notifications.transition_event(Transition.ForwardToSales, _inquiry(), ACTOR, previous_owner_id=4)
    assert event["user_ids"] == [1, 4]


@pytest.mark.anyio
async def test_publish_sends_to_targets(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(notifications.manager, "send_to_users", send)
    payload = notifications.build_event("assign", 1, "msg", [3])
    await notifications.publish(payload)
    send.assert_awaited_once_with([3], payload)


@pytest.mark.anyio
async def test_publish_never_raises(monkeypatch, caplog):
    monkeypatch.setattr(notifications.manager, "send_to_users", AsyncMock(side_effect=RuntimeError("socket gone")))
    with caplog.at_level(logging.ERROR):
        await notifications.publish(notifications.build_event("assign", 1, "msg", [3]))
    assert any("socket gone" in rec.getMessage() for rec in caplog.records)


@pytest.mark.anyio
async def test_publish_broadcasts_created_event(monkeypatch):
    broadcast = AsyncMock()
    send = AsyncMock()
    monkeypatch.setattr(notifications.manager, "broadcast", broadcast)
    monkeypatch.setattr(notifications.manager, "send_to_users", send)
    payload = notifications.created_event(_inquiry())
    await notifications.publish(payload, broadcast=True)
    broadcast.assert_awaited_once_with(payload)
    send.assert_not_awaited()


@pytest.mark.anyio
async def test_own_actions_notify_no_bystanders(monkeypatch):
    monkeypatch.setattr(notifications, "manager", ConnectionManager())
    owner_socket = AsyncMock()
    bystander_socket = AsyncMock()
    await notifications.manager.connect(owner_socket, ACTOR.id)
    await notifications.manager.connect(bystander_socket, 99)

    own_lead = _inquiry(created_by_id=ACTOR.id, assigned_to_id=ACTOR.id)
    for transition, previous_owner in (
        (Transition.Claim, None),
        (Transition.Assign, None),
        (Transition.MoveToUnattended, ACTOR.id),
    ):
        event = notifications.transition_event(transition, own_lead, ACTOR, previous_owner)
        assert event["user_ids"] == []
        await notifications.publish(event)

    owner_socket.send_text.assert_not_awaited()
    bystander_socket.send_text.assert_not_awaited()
