"""Messaging channel adapter.

Owns the messaging platform handle: login, channel join, sends, and the
translation of platform messaging events into session events.
"""

from __future__ import annotations

import logging
from typing import cast

from callroom.core.session_runtime.api import (
    KIND_SIGNALING,
    KIND_SYSTEM,
    MessageReceived,
    ParticipantJoined,
    ParticipantLeft,
    SessionEvent,
    StatusChanged,
)
from callroom.core.session_runtime.ports import (
    FAILED,
    NOT_STARTED,
    READY,
    STARTING,
    ChannelMessage,
    ConnectionStateChanged,
    MemberJoined,
    MemberLeft,
    MessagingEvent,
    MessagingPlatformPort,
    PeerMessage,
    SignalingPort,
)
from callroom.errors import ChannelError, NotJoined, TeardownError
from callroom.messaging.inbound import classify_inbound, encode_chat

log = logging.getLogger("messaging")


class MessagingChannelAdapter:
    def __init__(self, platform: MessagingPlatformPort, *, signaling: SignalingPort | None = None):
        self._platform = platform
        self._signaling = signaling
        self.login_phase = NOT_STARTED
        self.channel_phase = NOT_STARTED
        self.identity: str | None = None
        self.channel: str | None = None

    @property
    def ready(self) -> bool:
        return self.login_phase == READY and self.channel_phase == READY

    async def connect(self, identity: str, token: str) -> None:
        self.login_phase = STARTING
        self.identity = identity
        try:
            await self._platform.login(identity, token)
        except Exception as e:
            self.login_phase = FAILED
            raise ChannelError(f"login failed: {type(e).__name__}: {e}") from e
        self.login_phase = READY
        log.info(f"Logged in as {identity}")

    async def join_channel(self, name: str) -> None:
        if self.login_phase != READY:
            raise NotJoined("messaging login has not completed")
        self.channel_phase = STARTING
        self.channel = name
        try:
            await self._platform.join_channel(name)
        except Exception as e:
            self.channel_phase = FAILED
            raise ChannelError(f"failed to join channel {name}: {type(e).__name__}: {e}") from e
        self.channel_phase = READY
        log.info(f"Joined channel {name}")

    async def leave(self) -> list[TeardownError]:
        """Leave the channel and log out; both steps are always attempted."""
        failures: list[TeardownError] = []

        if self.channel_phase in (STARTING, READY):
            try:
                await self._platform.leave_channel()
            except Exception as e:
                log.warning(f"Leaving channel {self.channel} failed: {e}")
                failures.append(TeardownError("leave channel", e))

        if self.login_phase in (STARTING, READY):
            try:
                await self._platform.logout()
            except Exception as e:
                log.warning(f"Messaging logout failed: {e}")
                failures.append(TeardownError("logout", e))

        self.channel_phase = NOT_STARTED
        self.login_phase = NOT_STARTED
        self.channel = None
        self.identity = None
        return failures

    async def broadcast(self, message: str, sender: str) -> None:
        if not self.ready:
            raise NotJoined("not in a messaging channel")
        try:
            await self._platform.send_channel_message(encode_chat(message, sender))
        except Exception as e:
            raise ChannelError(f"failed to send message: {type(e).__name__}: {e}") from e

    async def send_direct(self, peer_id: str, message: str, sender: str) -> None:
        if self.login_phase != READY:
            raise NotJoined("messaging login has not completed")
        try:
            await self._platform.send_peer_message(peer_id, encode_chat(message, sender))
        except Exception as e:
            raise ChannelError(f"failed to send message to {peer_id}: {type(e).__name__}: {e}") from e

    async def handle(self, event: MessagingEvent) -> list[SessionEvent]:
        if isinstance(event, ConnectionStateChanged):
            state = (event.state or "").lower()
            label = f"Chat {state}" + (f" ({event.reason})" if event.reason else "")
            log.info(f"Messaging connection state: {event.state}, reason: {event.reason}")
            return [StatusChanged(phase=f"messaging:{state}", label=label)]

        if isinstance(event, MemberJoined):
            log.info(f"User joined: {event.member_id}")
            return [
                ParticipantJoined(event.member_id),
                MessageReceived(event.member_id, KIND_SYSTEM, f"{event.member_id} joined the room"),
            ]

        if isinstance(event, MemberLeft):
            log.info(f"User left: {event.member_id}")
            return [
                ParticipantLeft(event.member_id),
                MessageReceived(event.member_id, KIND_SYSTEM, f"{event.member_id} left the room"),
            ]

        if isinstance(event, PeerMessage):
            return await self._deliver(event.peer_id, event.text, source="peer")

        if isinstance(event, ChannelMessage):
            if self.identity and event.member_id == self.identity:
                # Our own broadcast echoed back; already rendered locally.
                return []
            return await self._deliver(event.member_id, event.text, source="channel")

        log.debug(f"Ignoring messaging event {event!r}")
        return []

    async def _deliver(self, sender_id: str, text: str, *, source: str) -> list[SessionEvent]:
        log.debug(f"Received {source} message from {sender_id}: {text}")
        inbound = classify_inbound(sender_id, text)

        if inbound.kind == KIND_SIGNALING:
            if self._signaling is None:
                log.debug(f"No signaling handler; dropping {source} signaling from {sender_id}")
                return []
            await self._signaling.on_signaling(sender_id, cast(dict, inbound.payload))
            return []

        return [MessageReceived(inbound.sender_id, inbound.kind, str(inbound.payload))]
