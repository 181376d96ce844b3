#!/usr/bin/env python3
"""
callroom - join a call room from the console.

Fetches tokens from the credential service, joins the room's chat channel over
XMPP and its media channel through the configured media platform, then relays
console input to the room until /leave, EOF or Ctrl-C.

Plain lines are sent as chat. See /help for commands.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Iterable

from callroom.commands import CommandHandler
from callroom.core.session_runtime import SessionController
from callroom.core.session_runtime.api import (
    IDLE,
    Error,
    LocalMediaReady,
    MessageReceived,
    ParticipantJoined,
    ParticipantLeft,
    SessionEvent,
    StatusChanged,
)
from callroom.errors import SessionError
from callroom.messaging.xmpp import XmppMessagingPlatform
from callroom.tokens import TokenBrokerClient
from callroom.utils import CallConfig, get_call_config, load_env, load_object

log = logging.getLogger("bridge")


class ConsoleEventSink:
    """Renders session events as console lines."""

    def __init__(self, out=None):
        self._out = out or sys.stdout

    def write(self, line: str) -> None:
        print(line, file=self._out, flush=True)

    async def emit(self, event: SessionEvent) -> None:
        if isinstance(event, StatusChanged):
            log.info(f"Status: {event.label}")
        elif isinstance(event, MessageReceived):
            if event.self_authored:
                self.write(f"[me] {event.text}")
            elif event.kind == "system":
                self.write(f"* {event.text}")
            else:
                self.write(f"[{event.sender_id}] {event.text}")
        elif isinstance(event, ParticipantJoined):
            log.info(f"Participant joined: {event.participant_id}")
        elif isinstance(event, ParticipantLeft):
            log.info(f"Participant left: {event.participant_id}")
        elif isinstance(event, LocalMediaReady):
            log.info("Local audio and video are live")
        elif isinstance(event, Error):
            log.error(f"{event.phase}: {event.message}")


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    slixmpp_level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("slixmpp").setLevel(slixmpp_level)
    logging.getLogger("slixmpp.xmlstream").setLevel(slixmpp_level)


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Join a callroom session from the console")
    parser.add_argument("--name", required=True, help="Display name shown to others")
    parser.add_argument("--room", required=True, help="Room to join")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(list(argv))


def build_controller(cfg: CallConfig, sink: ConsoleEventSink) -> SessionController:
    media_factory = load_object(cfg.media_platform)
    if not callable(media_factory):
        raise ValueError(f"{cfg.media_platform} is not callable")
    return SessionController(
        app_id=cfg.app_id,
        tokens=TokenBrokerClient(cfg.token_server_url),
        messaging=XmppMessagingPlatform(
            server=cfg.xmpp_server,
            domain=cfg.xmpp_domain,
            muc_service=cfg.muc_service,
            port=cfg.xmpp_port,
            plaintext=cfg.xmpp_plaintext,
            timeout_s=cfg.connect_timeout_s,
        ),
        media=media_factory(),
        events=sink,
    )


async def _open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def _read_lines(handler: CommandHandler, reader: asyncio.StreamReader) -> None:
    while not handler.leave_requested and handler.controller.state != IDLE:
        line = await reader.readline()
        if not line:
            return
        await handler.handle_line(line.decode(errors="replace"))


async def main_async(args: argparse.Namespace) -> int:
    cfg = get_call_config()
    sink = ConsoleEventSink()
    controller = build_controller(cfg, sink)

    try:
        await controller.start_session(args.name, args.room)
    except (SessionError, ValueError) as e:
        log.error(f"Could not join {args.room}: {e}")
        return 1

    handler = CommandHandler(controller, sink.write)
    try:
        await _read_lines(handler, await _open_stdin())
    finally:
        await controller.end_session()
    return 0


def main(argv: Iterable[str]) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    load_env()
    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        return 130


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
