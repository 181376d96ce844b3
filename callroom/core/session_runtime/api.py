"""Public API for the call session runtime.

This module is the stable boundary between:
- the presentation layer (whatever renders video, chat and status)
- the concrete controller implementation (runtime.py)

Code outside the runtime should depend on these types/protocols, not on
SessionController internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from callroom.errors import SessionError


# Session lifecycle states, in join order.
IDLE = "idle"
ACQUIRING = "acquiring"
JOINING_MESSAGING = "joining_messaging"
JOINING_MEDIA = "joining_media"
ACTIVE = "active"
LEAVING = "leaving"

STATE_LABELS = {
    IDLE: "Not connected",
    ACQUIRING: "Getting tokens...",
    JOINING_MESSAGING: "Joining chat channel...",
    JOINING_MEDIA: "Joining media channel...",
    ACTIVE: "Connected",
    LEAVING: "Leaving room...",
}

# Inbound message kinds.
KIND_CHAT = "chat"
KIND_SYSTEM = "system"
KIND_SIGNALING = "signaling"
KIND_UNSTRUCTURED = "unstructured"


@dataclass
class Session:
    local_id: str
    display_name: str
    room_name: str
    state: str = IDLE
    last_error: SessionError | None = None


@dataclass(frozen=True)
class CredentialPair:
    messaging_token: str
    media_token: str

    def __repr__(self) -> str:
        return "CredentialPair(messaging_token=<redacted>, media_token=<redacted>)"


@dataclass(frozen=True)
class InboundMessage:
    sender_id: str
    kind: str  # chat|system|signaling|unstructured
    payload: object
    raw_text: str


@dataclass(frozen=True)
class RemoteParticipantInfo:
    id: str
    has_audio: bool
    has_video: bool


class SessionPort(Protocol):
    @property
    def state(self) -> str: ...

    async def start_session(self, display_name: str, room_name: str) -> None: ...

    async def end_session(self) -> None: ...

    async def send_chat_message(self, text: str) -> None: ...

    async def send_direct_message(self, peer_id: str, text: str) -> None: ...

    def toggle_microphone(self) -> bool | None: ...

    def toggle_camera(self) -> bool | None: ...


# -----------------
# Event boundary
# -----------------


@dataclass(frozen=True)
class StatusChanged:
    phase: str  # a session state, or "messaging:<connection state>"
    label: str


@dataclass(frozen=True)
class MessageReceived:
    sender_id: str
    kind: str
    text: str
    self_authored: bool = False


@dataclass(frozen=True)
class ParticipantJoined:
    participant_id: str


@dataclass(frozen=True)
class ParticipantLeft:
    participant_id: str


@dataclass(frozen=True)
class LocalMediaReady:
    audio_track: object
    video_track: object


@dataclass(frozen=True)
class Error:
    phase: str
    error: SessionError

    @property
    def message(self) -> str:
        return str(self.error)


SessionEvent = (
    StatusChanged
    | MessageReceived
    | ParticipantJoined
    | ParticipantLeft
    | LocalMediaReady
    | Error
)


class EventSinkPort(Protocol):
    async def emit(self, event: SessionEvent) -> None: ...
