"""Shared fakes for session tests."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from callroom.core.session_runtime import SessionController
from callroom.core.session_runtime.api import CredentialPair
from callroom.errors import BrokerError


class FakeTokens:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def fetch_credentials(self, local_id: str, room_name: str) -> CredentialPair:
        self.calls.append((local_id, room_name))
        if self.error is not None:
            raise self.error
        return CredentialPair(messaging_token="rtm-token", media_token="media-token")


class FakePlatform:
    """Records calls; raises for any method named in `fail`."""

    def __init__(self, fail: set[str] | None = None, log: list[str] | None = None):
        self.fail = set(fail or ())
        self.calls: list[str] = []
        self.shared_log = log
        self.post = None

    def bind(self, post) -> None:
        self.post = post

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.shared_log is not None:
            self.shared_log.append(name)
        if name in self.fail:
            raise RuntimeError(f"{name} exploded")


class FakeMessaging(FakePlatform):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sent: list[str] = []
        self.direct: list[tuple[str, str]] = []

    async def login(self, uid: str, token: str) -> None:
        self._call("login")

    async def logout(self) -> None:
        self._call("logout")

    async def join_channel(self, name: str) -> None:
        self._call("join_channel")

    async def leave_channel(self) -> None:
        self._call("leave_channel")

    async def send_channel_message(self, text: str) -> None:
        self._call("send_channel_message")
        self.sent.append(text)

    async def send_peer_message(self, peer_id: str, text: str) -> None:
        self._call("send_peer_message")
        self.direct.append((peer_id, text))


class FakeLocalTrack:
    def __init__(self, kind: str, fail_close: bool = False):
        self.kind = kind
        self.fail_close = fail_close
        self.muted = False
        self.enabled = True
        self.closed = False

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise RuntimeError("close exploded")


class FakeRemoteTrack:
    def __init__(self, user_id: str, kind: str):
        self.user_id = user_id
        self.kind = kind
        self.attached_to: object | None = None
        self.stopped = False

    def attach(self, target: object) -> None:
        self.attached_to = target

    def stop(self) -> None:
        self.stopped = True


class FakeMedia(FakePlatform):
    def __init__(self, *args, fail_close: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_close = fail_close
        self.audio: FakeLocalTrack | None = None
        self.video: FakeLocalTrack | None = None
        self.published: list[FakeLocalTrack] = []
        self.subscribed: list[FakeRemoteTrack] = []

    async def join(self, app_id: str, token: str, channel: str, uid: str) -> None:
        self._call("join")

    async def leave(self) -> None:
        self._call("leave")

    async def create_local_tracks(self):
        self._call("create_local_tracks")
        self.audio = FakeLocalTrack("audio", fail_close=self.fail_close)
        self.video = FakeLocalTrack("video")
        return self.audio, self.video

    async def publish(self, tracks) -> None:
        self._call("publish")
        self.published = list(tracks)

    async def subscribe(self, user_id: str, kind: str) -> FakeRemoteTrack:
        self._call(f"subscribe:{user_id}:{kind}")
        track = FakeRemoteTrack(user_id, kind)
        self.subscribed.append(track)
        return track


class FakeRender:
    def __init__(self):
        self.detached: list[tuple[str, str]] = []

    def target_for(self, participant_id: str, kind: str) -> object:
        return f"{kind}-surface:{participant_id}"

    def detach(self, participant_id: str, kind: str) -> None:
        self.detached.append((participant_id, kind))


class RecordingSink:
    def __init__(self):
        self.events: list[object] = []

    async def emit(self, event) -> None:
        self.events.append(event)

    def of(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


@dataclass
class Harness:
    controller: SessionController
    tokens: FakeTokens
    messaging: FakeMessaging
    media: FakeMedia
    render: FakeRender
    sink: RecordingSink
    calls: list[str] = field(default_factory=list)


@pytest.fixture
def make_harness():
    def factory(
        *,
        token_error: Exception | None = None,
        messaging_fail: set[str] | None = None,
        media_fail: set[str] | None = None,
        fail_close: bool = False,
        signaling=None,
    ) -> Harness:
        calls: list[str] = []
        tokens = FakeTokens(token_error)
        messaging = FakeMessaging(messaging_fail, log=calls)
        media = FakeMedia(media_fail, log=calls, fail_close=fail_close)
        render = FakeRender()
        sink = RecordingSink()
        controller = SessionController(
            app_id="app-123",
            tokens=tokens,
            messaging=messaging,
            media=media,
            events=sink,
            render=render,
            signaling=signaling,
            generate_id=lambda: "local-1",
        )
        return Harness(controller, tokens, messaging, media, render, sink, calls)

    return factory


@pytest.fixture
def broker_500() -> BrokerError:
    return BrokerError("boom", status=500, url="http://tokens/media-token")
