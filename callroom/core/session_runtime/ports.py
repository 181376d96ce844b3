"""Ports for SessionController.

These interfaces keep the controller independent of the credential service
(HTTP), the messaging network (XMPP or otherwise) and the media platform.

Platforms never call back into adapters directly. They post the typed events
below through the `post` callable handed to them, and the controller's pump
delivers them one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from callroom.core.session_runtime.api import CredentialPair


# Media kinds.
AUDIO = "audio"
VIDEO = "video"
MEDIA_KINDS = (AUDIO, VIDEO)

# Subsystem phases.
NOT_STARTED = "not_started"
STARTING = "starting"
READY = "ready"
FAILED = "failed"


# -----------------
# Platform events
# -----------------


@dataclass(frozen=True)
class ConnectionStateChanged:
    state: str  # e.g. CONNECTED|DISCONNECTED|RECONNECTING
    reason: str = ""


@dataclass(frozen=True)
class PeerMessage:
    peer_id: str
    text: str


@dataclass(frozen=True)
class ChannelMessage:
    member_id: str
    text: str


@dataclass(frozen=True)
class MemberJoined:
    member_id: str


@dataclass(frozen=True)
class MemberLeft:
    member_id: str


@dataclass(frozen=True)
class UserPublished:
    user_id: str
    kind: str  # audio|video


@dataclass(frozen=True)
class UserUnpublished:
    user_id: str
    kind: str  # audio|video


MessagingEvent = ConnectionStateChanged | PeerMessage | ChannelMessage | MemberJoined | MemberLeft
MediaEvent = UserPublished | UserUnpublished
PlatformEvent = MessagingEvent | MediaEvent

EventPoster = Callable[[PlatformEvent], None]


# -----------------
# Capability ports
# -----------------


class TokenBrokerPort(Protocol):
    async def fetch_credentials(self, local_id: str, room_name: str) -> CredentialPair: ...


class MessagingPlatformPort(Protocol):
    def bind(self, post: EventPoster) -> None: ...

    async def login(self, uid: str, token: str) -> None: ...

    async def logout(self) -> None: ...

    async def join_channel(self, name: str) -> None: ...

    async def leave_channel(self) -> None: ...

    async def send_channel_message(self, text: str) -> None: ...

    async def send_peer_message(self, peer_id: str, text: str) -> None: ...


class LocalTrack(Protocol):
    def set_muted(self, muted: bool) -> None: ...

    def set_enabled(self, enabled: bool) -> None: ...

    def close(self) -> None: ...


class RemoteTrack(Protocol):
    def attach(self, target: object) -> None: ...

    def stop(self) -> None: ...


class MediaPlatformPort(Protocol):
    def bind(self, post: EventPoster) -> None: ...

    async def join(self, app_id: str, token: str, channel: str, uid: str) -> None: ...

    async def leave(self) -> None: ...

    async def create_local_tracks(self) -> tuple[LocalTrack, LocalTrack]: ...

    async def publish(self, tracks: list[LocalTrack]) -> None: ...

    async def subscribe(self, user_id: str, kind: str) -> RemoteTrack: ...


class RenderPort(Protocol):
    """Render targets owned by the presentation layer."""

    def target_for(self, participant_id: str, kind: str) -> object: ...

    def detach(self, participant_id: str, kind: str) -> None: ...


class SignalingPort(Protocol):
    async def on_signaling(self, peer_id: str, data: dict) -> None: ...
