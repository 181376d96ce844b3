"""Tests for the messaging channel adapter."""

import asyncio
import json

import pytest

from callroom.core.session_runtime.api import (
    MessageReceived,
    ParticipantJoined,
    ParticipantLeft,
    StatusChanged,
)
from callroom.core.session_runtime.ports import (
    ChannelMessage,
    ConnectionStateChanged,
    MemberJoined,
    MemberLeft,
    PeerMessage,
)
from callroom.errors import ChannelError, NotJoined
from callroom.messaging import MessagingChannelAdapter

from .conftest import FakeMessaging


class RecordingSignaling:
    def __init__(self):
        self.seen: list[tuple[str, dict]] = []

    async def on_signaling(self, peer_id: str, data: dict) -> None:
        self.seen.append((peer_id, data))


async def _joined(platform: FakeMessaging, **kwargs) -> MessagingChannelAdapter:
    adapter = MessagingChannelAdapter(platform, **kwargs)
    await adapter.connect("me", "tok")
    await adapter.join_channel("room")
    return adapter


class TestLifecycle:
    def test_connect_and_join(self):
        platform = FakeMessaging()
        adapter = asyncio.run(_joined(platform))
        assert adapter.ready
        assert platform.calls == ["login", "join_channel"]

    def test_login_failure_is_channel_error(self):
        adapter = MessagingChannelAdapter(FakeMessaging({"login"}))
        with pytest.raises(ChannelError, match="login failed"):
            asyncio.run(adapter.connect("me", "tok"))
        assert adapter.login_phase == "failed"

    def test_join_before_login_is_rejected(self):
        platform = FakeMessaging()
        adapter = MessagingChannelAdapter(platform)
        with pytest.raises(NotJoined):
            asyncio.run(adapter.join_channel("room"))
        assert platform.calls == []

    def test_leave_attempts_logout_after_failed_channel_leave(self):
        platform = FakeMessaging({"leave_channel"})

        async def run():
            adapter = await _joined(platform)
            return adapter, await adapter.leave()

        adapter, failures = asyncio.run(run())
        assert platform.calls[-2:] == ["leave_channel", "logout"]
        assert [f.step for f in failures] == ["leave channel"]
        assert not adapter.ready

    def test_leave_after_failed_login_touches_nothing(self):
        platform = FakeMessaging({"login"})
        adapter = MessagingChannelAdapter(platform)

        async def run():
            with pytest.raises(ChannelError):
                await adapter.connect("me", "tok")
            return await adapter.leave()

        assert asyncio.run(run()) == []
        assert platform.calls == ["login"]


class TestSend:
    def test_broadcast_sends_chat_payload(self):
        platform = FakeMessaging()

        async def run():
            adapter = await _joined(platform)
            await adapter.broadcast("hello", "alice")

        asyncio.run(run())
        assert json.loads(platform.sent[0]) == {"type": "chat", "message": "hello", "sender": "alice"}

    def test_broadcast_failure_is_channel_error(self):
        platform = FakeMessaging({"send_channel_message"})

        async def run():
            adapter = await _joined(platform)
            await adapter.broadcast("hello", "alice")

        with pytest.raises(ChannelError, match="failed to send"):
            asyncio.run(run())

    def test_broadcast_requires_channel(self):
        adapter = MessagingChannelAdapter(FakeMessaging())
        with pytest.raises(NotJoined):
            asyncio.run(adapter.broadcast("hello", "alice"))

    def test_send_direct(self):
        platform = FakeMessaging()

        async def run():
            adapter = await _joined(platform)
            await adapter.send_direct("bob", "psst", "alice")

        asyncio.run(run())
        peer, text = platform.direct[0]
        assert peer == "bob"
        assert json.loads(text)["message"] == "psst"


class TestHandle:
    def _handle(self, event, **kwargs):
        async def run():
            adapter = await _joined(FakeMessaging(), **kwargs)
            return await adapter.handle(event)

        return asyncio.run(run())

    def test_chat_from_channel(self):
        out = self._handle(ChannelMessage("m1", '{"type":"chat","message":"hi","sender":"bob"}'))
        assert out == [MessageReceived(sender_id="bob", kind="chat", text="hi")]

    def test_plain_text_from_peer(self):
        out = self._handle(PeerMessage("p1", "just text"))
        assert out == [MessageReceived(sender_id="p1", kind="unstructured", text="just text")]

    def test_own_channel_echo_is_ignored(self):
        assert self._handle(ChannelMessage("me", '{"type":"chat","message":"hi","sender":"alice"}')) == []

    def test_signaling_goes_to_hook_only(self):
        signaling = RecordingSignaling()
        out = self._handle(PeerMessage("p1", '{"type":"offer","sdp":"v=0"}'), signaling=signaling)
        assert out == []
        assert signaling.seen == [("p1", {"type": "offer", "sdp": "v=0"})]

    def test_signaling_without_hook_is_dropped(self):
        assert self._handle(ChannelMessage("m1", '{"type":"answer"}')) == []

    def test_presence(self):
        joined = self._handle(MemberJoined("carol"))
        assert joined[0] == ParticipantJoined("carol")
        assert joined[1].kind == "system"
        left = self._handle(MemberLeft("carol"))
        assert left[0] == ParticipantLeft("carol")
        assert left[1].text == "carol left the room"

    def test_connection_state(self):
        out = self._handle(ConnectionStateChanged("DISCONNECTED", "NETWORK_ERROR"))
        assert out == [StatusChanged(phase="messaging:disconnected", label="Chat disconnected (NETWORK_ERROR)")]
