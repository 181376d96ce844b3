"""XMPP messaging platform.

Maps the messaging capability surface onto XMPP:
- login: a client connection as `{uid}@{domain}`, the messaging token as password
- channel: a MUC room `{name}@{muc_service}`, joined with the uid as nick
- presence: room occupants coming and going
- peer messages: one-to-one `chat` stanzas
"""

# pyright: reportMissingImports=false

from __future__ import annotations

import asyncio
import logging
from typing import Any, cast

from slixmpp.clientxmpp import ClientXMPP

from callroom.core.session_runtime.ports import (
    ChannelMessage,
    ConnectionStateChanged,
    EventPoster,
    MemberJoined,
    MemberLeft,
    PeerMessage,
)

log = logging.getLogger("xmpp")


class ChannelBot(ClientXMPP):
    """One logged-in identity, in at most one room."""

    def __init__(self, jid: str, password: str, post: EventPoster):
        super().__init__(jid, password)
        self._post = post
        self._connected_event = asyncio.Event()
        self.startup_error: str | None = None
        self.shutting_down = False
        self.room_jid: str | None = None
        self.nick: str | None = None
        self._occupants: set[str] = set()

        self.register_plugin("xep_0199")  # Ping
        self.register_plugin("xep_0045")  # Multi-User Chat
        self.register_plugin("xep_0203")  # Delayed Delivery

        self.add_event_handler("session_start", self.on_start)
        self.add_event_handler("failed_auth", self.on_failed_auth)
        self.add_event_handler("disconnected", self.on_disconnected)
        self.add_event_handler("message", self.on_message)
        self.add_event_handler("groupchat_message", self.on_groupchat_message)
        self.add_event_handler("groupchat_presence", self.on_groupchat_presence)

    def connect_to_server(self, server: str, port: int = 5222, *, plaintext: bool = True):
        if plaintext:
            self["feature_mechanisms"].unencrypted_plain = True  # type: ignore[attr-defined]
            self.enable_starttls = False
            self.enable_direct_tls = False
            self.enable_plaintext = True
        self.connect((server, port))  # type: ignore[arg-type]

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout)
        except asyncio.TimeoutError:
            self.startup_error = self.startup_error or f"no session after {timeout}s"
            return False
        return self.startup_error is None

    # -------------------------------------------------------------------------
    # XMPP lifecycle
    # -------------------------------------------------------------------------

    async def on_start(self, event):
        self.send_presence()
        try:
            await asyncio.wait_for(self.get_roster(), timeout=15)
        except asyncio.TimeoutError:
            log.warning("Roster fetch timed out; continuing without it")
        self._connected_event.set()
        self._post(ConnectionStateChanged("CONNECTED", "LOGIN_SUCCESS"))

    def on_failed_auth(self, event):
        self.startup_error = "authentication failed"
        self._connected_event.set()

    def on_disconnected(self, event):
        was_connected = self._connected_event.is_set() and self.startup_error is None
        self._connected_event.clear()
        self._occupants.clear()
        if was_connected:
            reason = "LOGOUT" if self.shutting_down else "NETWORK_ERROR"
            self._post(ConnectionStateChanged("DISCONNECTED", reason))

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def on_message(self, msg):
        if msg["type"] not in ("chat", "normal"):
            return
        body = msg["body"] or ""
        if not body:
            return
        self._post(PeerMessage(str(msg["from"].user), body))

    def on_groupchat_message(self, msg):
        if not self.room_jid or str(msg["from"].bare) != self.room_jid:
            return
        nick = str(msg["from"].resource or "")
        body = msg["body"] or ""
        # Room history and our own reflected messages are not live traffic.
        if not nick or nick == self.nick or not body or msg["delay"]["stamp"]:
            return
        self._post(ChannelMessage(nick, body))

    def on_groupchat_presence(self, presence):
        if not self.room_jid or str(presence["from"].bare) != self.room_jid:
            return
        nick = str(presence["muc"]["nick"] or presence["from"].resource or "")
        if not nick or nick == self.nick:
            return
        if presence["type"] == "unavailable":
            if nick in self._occupants:
                self._occupants.discard(nick)
                self._post(MemberLeft(nick))
            return
        if nick not in self._occupants:
            self._occupants.add(nick)
            self._post(MemberJoined(nick))

    # -------------------------------------------------------------------------
    # Channel
    # -------------------------------------------------------------------------

    async def join_room(self, room_jid: str, nick: str, *, timeout: float) -> None:
        muc = cast(Any, self["xep_0045"])
        self.room_jid = room_jid
        self.nick = nick
        await asyncio.wait_for(muc.join_muc(room_jid, nick), timeout=timeout)  # type: ignore[attr-defined]

    def leave_room(self) -> None:
        if not self.room_jid:
            return
        muc = cast(Any, self["xep_0045"])
        muc.leave_muc(self.room_jid, self.nick)  # type: ignore[attr-defined]
        self.room_jid = None
        self._occupants.clear()


class XmppMessagingPlatform:
    def __init__(
        self,
        *,
        server: str,
        domain: str,
        muc_service: str,
        port: int = 5222,
        plaintext: bool = True,
        timeout_s: float = 15.0,
    ):
        self.server = server
        self.domain = domain
        self.muc_service = muc_service
        self.port = port
        self.plaintext = plaintext
        self.timeout_s = timeout_s
        self._post: EventPoster | None = None
        self._bot: ChannelBot | None = None

    def bind(self, post: EventPoster) -> None:
        self._post = post

    def _require_bot(self) -> ChannelBot:
        if self._bot is None:
            raise RuntimeError("XMPP client is not logged in")
        return self._bot

    async def login(self, uid: str, token: str) -> None:
        if self._post is None:
            raise RuntimeError("XMPP platform is not bound to an event channel")
        bot = ChannelBot(f"{uid}@{self.domain}", token, self._post)
        bot.connect_to_server(self.server, self.port, plaintext=self.plaintext)
        try:
            connected = await bot.wait_connected(self.timeout_s)
        except asyncio.CancelledError:
            bot.shutting_down = True
            bot.disconnect()
            raise
        if not connected:
            error = bot.startup_error or "connection failed"
            bot.shutting_down = True
            bot.disconnect()
            raise ConnectionError(f"XMPP login for {uid} failed: {error}")
        self._bot = bot
        log.info(f"XMPP session started for {bot.boundjid}")

    async def logout(self) -> None:
        bot = self._bot
        self._bot = None
        if bot is None:
            return
        bot.shutting_down = True
        waiter = bot.disconnect()
        if waiter is not None:
            await asyncio.wait_for(waiter, timeout=self.timeout_s)

    async def join_channel(self, name: str) -> None:
        bot = self._require_bot()
        await bot.join_room(f"{name}@{self.muc_service}", bot.boundjid.user, timeout=self.timeout_s)

    async def leave_channel(self) -> None:
        self._require_bot().leave_room()

    async def send_channel_message(self, text: str) -> None:
        bot = self._require_bot()
        if not bot.room_jid:
            raise RuntimeError("not in a room")
        bot.send_message(mto=bot.room_jid, mbody=text, mtype="groupchat")

    async def send_peer_message(self, peer_id: str, text: str) -> None:
        bot = self._require_bot()
        bot.send_message(mto=f"{peer_id}@{self.domain}", mbody=text, mtype="chat")
