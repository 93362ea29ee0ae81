from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


RENAME_LOG_TYPE = "log:thread-name"

THREAD_FIELDS = ("threadID", "thread_id", "channel.id", "thread.id")
SENDER_FIELDS = ("senderID", "sender_id", "sender.id", "author.id")
MESSAGE_FIELDS = ("messageID", "message_id", "id")
BODY_FIELDS = ("body", "content", "message.body")
ATTACHMENT_FIELDS = ("attachments", "message.attachments")
REPLY_FIELDS = ("messageReply", "reference.resolved")


@dataclass(frozen=True)
class ReplyRef:
    message_id: str
    body: str
    attachments: tuple[Any, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.body and not self.attachments


@dataclass(frozen=True)
class InboundEvent:
    thread_id: str
    sender_id: str
    message_id: str = ""
    body: str = ""
    attachments: tuple[Any, ...] = ()
    reply: ReplyRef | None = None
    renamed_to: str | None = None

    @property
    def is_rename(self) -> bool:
        return self.renamed_to is not None


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    argument: str
    args: tuple[str, ...]


def normalize_event(raw: Any) -> InboundEvent | None:
    """
    Build the canonical event record from a client payload.

    Payloads may be mappings (dict-shaped gateway events) or library objects; the
    same field-name fallback chain is applied to both. Returns None when the thread
    or the sender cannot be resolved.
    """

    if raw is None:
        return None
    if isinstance(raw, InboundEvent):
        return raw
    thread_id = _as_id(_probe(raw, THREAD_FIELDS))
    sender_id = _as_id(_probe(raw, SENDER_FIELDS))
    if not thread_id or not sender_id:
        return None
    renamed_to: str | None = None
    if _probe(raw, ("type",)) == "event" and _probe(raw, ("logMessageType",)) == RENAME_LOG_TYPE:
        renamed_to = str(_probe(raw, ("logMessageData.name", "logMessageData.title")) or "")
    return InboundEvent(
        thread_id=thread_id,
        sender_id=sender_id,
        message_id=_as_id(_probe(raw, MESSAGE_FIELDS)),
        body=_clean_body(_probe(raw, BODY_FIELDS)),
        attachments=_as_tuple(_probe(raw, ATTACHMENT_FIELDS)),
        reply=reply_ref(_probe(raw, REPLY_FIELDS)),
        renamed_to=renamed_to,
    )


def rename_event(thread_id: Any, sender_id: Any, new_name: str) -> InboundEvent | None:
    thread = _as_id(thread_id)
    sender = _as_id(sender_id)
    if not thread or not sender:
        return None
    return InboundEvent(thread_id=thread, sender_id=sender, renamed_to=str(new_name or ""))


def parse_command(body: str) -> ParsedCommand:
    args = tuple(body.split())
    if not args:
        return ParsedCommand(name="", argument="", args=())
    return ParsedCommand(name=args[0].lower(), argument=" ".join(args[1:]).strip(), args=args)


def _probe(raw: Any, fields: tuple[str, ...]) -> Any:
    for field in fields:
        value = _lookup(raw, field)
        if value:
            return value
    return None


def _lookup(raw: Any, dotted: str) -> Any:
    node = raw
    for part in dotted.split("."):
        if node is None:
            return None
        if isinstance(node, Mapping):
            node = node.get(part)
        else:
            node = getattr(node, part, None)
    return node


def _as_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _clean_body(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def _as_tuple(value: Any) -> tuple[Any, ...]:
    if not value or isinstance(value, (str, bytes, Mapping)):
        return ()
    try:
        return tuple(value)
    except TypeError:
        return ()


def reply_ref(raw: Any) -> ReplyRef | None:
    if raw is None:
        return None
    body = _probe(raw, ("body", "content"))
    return ReplyRef(
        message_id=_as_id(_probe(raw, MESSAGE_FIELDS)),
        body=body.strip() if isinstance(body, str) else "",
        attachments=_as_tuple(_probe(raw, ("attachments",))),
    )
