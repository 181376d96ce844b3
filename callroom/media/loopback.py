"""Loopback media platform.

Joins nothing and captures nothing: tracks only record the state they are put
in. Lets a session run chat and presence end to end where no real media
platform is wired in (headless runs, local development).
"""

from __future__ import annotations

import logging

from callroom.core.session_runtime.ports import AUDIO, VIDEO, EventPoster

log = logging.getLogger("media.loopback")


class LoopbackTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.muted = False
        self.enabled = True
        self.closed = False

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def close(self) -> None:
        self.closed = True


class LoopbackRemoteTrack:
    def __init__(self, user_id: str, kind: str):
        self.user_id = user_id
        self.kind = kind
        self.target: object | None = None
        self.stopped = False

    def attach(self, target: object) -> None:
        self.target = target

    def stop(self) -> None:
        self.stopped = True


class LoopbackMediaPlatform:
    def __init__(self) -> None:
        self._post: EventPoster | None = None
        self.channel: str | None = None
        self.published: list[LoopbackTrack] = []

    def bind(self, post: EventPoster) -> None:
        self._post = post

    async def join(self, app_id: str, token: str, channel: str, uid: str) -> None:
        self.channel = channel
        log.info(f"Loopback media joined {channel} as {uid}")

    async def leave(self) -> None:
        self.channel = None
        self.published = []

    async def create_local_tracks(self) -> tuple[LoopbackTrack, LoopbackTrack]:
        return LoopbackTrack(AUDIO), LoopbackTrack(VIDEO)

    async def publish(self, tracks: list[LoopbackTrack]) -> None:
        if self.channel is None:
            raise RuntimeError("not in a media channel")
        self.published = list(tracks)

    async def subscribe(self, user_id: str, kind: str) -> LoopbackRemoteTrack:
        return LoopbackRemoteTrack(user_id, kind)
