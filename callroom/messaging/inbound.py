"""Inbound text classification for the messaging channel."""

from __future__ import annotations

import json

from callroom.core.session_runtime.api import (
    KIND_CHAT,
    KIND_SIGNALING,
    KIND_UNSTRUCTURED,
    InboundMessage,
)

SIGNALING_TYPES = frozenset({"offer", "answer", "ice-candidate"})


def classify_inbound(sender_id: str, text: str) -> InboundMessage:
    """Classify one text payload from a peer or the channel.

    Chat payloads carry their own `sender`; everything else is attributed to
    the transport-level sender.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return InboundMessage(sender_id, KIND_UNSTRUCTURED, text, text)

    if not isinstance(data, dict):
        return InboundMessage(sender_id, KIND_UNSTRUCTURED, text, text)

    msg_type = data.get("type")
    if msg_type in SIGNALING_TYPES:
        return InboundMessage(sender_id, KIND_SIGNALING, data, text)

    if msg_type == "chat":
        message = data.get("message")
        if isinstance(message, str):
            sender = data.get("sender")
            if not isinstance(sender, str) or not sender.strip():
                sender = sender_id
            return InboundMessage(sender, KIND_CHAT, message, text)

    return InboundMessage(sender_id, KIND_UNSTRUCTURED, text, text)


def encode_chat(message: str, sender: str) -> str:
    return json.dumps({"type": "chat", "message": message, "sender": sender})
