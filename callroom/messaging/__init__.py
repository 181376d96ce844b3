"""Messaging channel: presence, chat and the platform that carries them."""

from callroom.messaging.adapter import MessagingChannelAdapter
from callroom.messaging.inbound import classify_inbound, encode_chat

__all__ = ["MessagingChannelAdapter", "classify_inbound", "encode_chat"]
