from __future__ import annotations

from types import SimpleNamespace

from luffy_v1.events import InboundEvent, normalize_event, parse_command, rename_event


def test_mapping_payload_with_primary_field_names() -> None:
    event = normalize_event({"threadID": "t1", "senderID": "u1", "messageID": "m1", "body": "  hi   there "})
    assert event == InboundEvent(thread_id="t1", sender_id="u1", message_id="m1", body="hi there")
    assert event.is_rename is False


def test_mapping_payload_uses_fallback_field_names() -> None:
    event = normalize_event(
        {
            "thread_id": 55,
            "sender": {"id": 66},
            "message_id": "m9",
            "message": {"body": "/uid", "attachments": ["a1", "a2"]},
        }
    )
    assert event is not None
    assert event.thread_id == "55"
    assert event.sender_id == "66"
    assert event.body == "/uid"
    assert event.attachments == ("a1", "a2")


def test_events_without_thread_or_sender_are_discarded() -> None:
    assert normalize_event({"threadID": "t1", "body": "hi"}) is None
    assert normalize_event({"senderID": "u1", "body": "hi"}) is None
    assert normalize_event(None) is None
    assert rename_event("t1", None, "x") is None


def test_rename_notification_payload() -> None:
    event = normalize_event(
        {
            "type": "event",
            "logMessageType": "log:thread-name",
            "threadID": "t1",
            "author": {"id": "u2"},
            "logMessageData": {"name": "Bar"},
        }
    )
    assert event is not None
    assert event.is_rename is True
    assert event.renamed_to == "Bar"
    assert event.body == ""


def test_library_message_object_is_normalized() -> None:
    resolved = SimpleNamespace(id=77, content=" original text ", attachments=["img"])
    message = SimpleNamespace(
        channel=SimpleNamespace(id=10),
        author=SimpleNamespace(id=20),
        id=30,
        content="  /RKB   Foo  Bar ",
        attachments=[],
        reference=SimpleNamespace(resolved=resolved),
    )
    event = normalize_event(message)
    assert event is not None
    assert (event.thread_id, event.sender_id, event.message_id) == ("10", "20", "30")
    assert event.body == "/RKB Foo Bar"
    assert event.reply is not None
    assert event.reply.message_id == "77"
    assert event.reply.body == "original text"
    assert event.reply.attachments == ("img",)


def test_parse_command_folds_only_the_command_word() -> None:
    command = parse_command("/RKB Foo Bar")
    assert command.name == "/rkb"
    assert command.argument == "Foo Bar"
    assert command.args == ("/RKB", "Foo", "Bar")
    assert parse_command("").name == ""
