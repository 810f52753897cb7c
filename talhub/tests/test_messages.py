"""
Message feed and case channel tests.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from talhub import cases as case_service
from talhub import messages as message_service
from talhub.db.models import Message, MessageType, UserRole
from talhub.errors import NotFoundError, ValidationError
from talhub.realtime import CaseChannelHub, MESSAGE_INSERTED, get_hub


@pytest.fixture
def chat(db, make_user):
    owner = make_user("owner@example.com", UserRole.TENANT)
    outsider = make_user("outsider@example.com", UserRole.LANDLORD)
    case = case_service.create_case(db, owner, "Heating", "repairs")
    return owner, outsider, case


class TestMessages:

    def test_history_is_oldest_first(self, db, chat):
        owner, _, case = chat
        now = datetime.utcnow()
        for offset, text in ((2, "third"), (0, "first"), (1, "second")):
            db.add(Message(case_id=case.id, sender_id=owner.user_id, type=MessageType.TEXT,
                           content=text, created_at=now + timedelta(seconds=offset)))
        db.commit()

        history = message_service.list_messages(db, owner, case.id)
        assert [m.content for m in history] == ["first", "second", "third"]
        assert message_service.message_to_dict(history[0])["sender"]["email"] == "owner@example.com"

    def test_send_strips_and_rejects_empty(self, db, chat):
        owner, _, case = chat
        message = message_service.send_message(db, owner, case.id, "  hello  ")
        assert message.content == "hello"
        assert message.type == MessageType.TEXT

        with pytest.raises(ValidationError):
            message_service.send_message(db, owner, case.id, "   ")

    def test_invalid_type_rejected(self, db, chat):
        owner, _, case = chat
        with pytest.raises(ValidationError):
            message_service.send_message(db, owner, case.id, "hi", "shout")

    def test_outsider_cannot_read_or_send(self, db, chat):
        _, outsider, case = chat
        with pytest.raises(NotFoundError):
            message_service.list_messages(db, outsider, case.id)
        with pytest.raises(NotFoundError):
            message_service.send_message(db, outsider, case.id, "let me in")

    def test_stats(self, db, chat):
        owner, _, case = chat
        assert message_service.message_stats(db, owner, case.id) == {"total_messages": 0, "last_message_at": None}

        message_service.send_message(db, owner, case.id, "one")
        last = message_service.send_message(db, owner, case.id, "two")

        stats = message_service.message_stats(db, owner, case.id)
        assert stats["total_messages"] == 2
        assert stats["last_message_at"] == last.created_at.isoformat()


class TestCaseChannel:

    def test_publish_reaches_only_that_case(self):
        hub = CaseChannelHub()

        async def scenario():
            async with hub.subscribe("case-a") as sub_a, hub.subscribe("case-b") as sub_b:
                assert hub.publish("case-a", MESSAGE_INSERTED, {"message_id": "m1"}) == 1
                event = await sub_a.next_event(timeout=1)
                assert event == {"type": MESSAGE_INSERTED, "case_id": "case-a", "payload": {"message_id": "m1"}}
                assert sub_b.pending() == 0
            return hub.subscriber_count("case-a")

        assert asyncio.run(scenario()) == 0
        assert hub.publish("case-a", MESSAGE_INSERTED) == 0

    def test_publish_from_worker_thread(self):
        hub = CaseChannelHub()

        async def scenario():
            async with hub.subscribe("case-a") as sub:
                await asyncio.get_running_loop().run_in_executor(
                    None, hub.publish, "case-a", MESSAGE_INSERTED, None
                )
                return await sub.next_event(timeout=1)

        assert asyncio.run(scenario())["type"] == MESSAGE_INSERTED

    def test_send_message_notifies_subscribers(self, db, chat):
        owner, _, case = chat

        async def scenario():
            async with get_hub().subscribe(case.id) as sub:
                message = message_service.send_message(db, owner, case.id, "ping")
                event = await sub.next_event(timeout=1)
                return message, event

        message, event = asyncio.run(scenario())
        assert event["type"] == MESSAGE_INSERTED
        assert event["payload"] == {"message_id": message.id}
