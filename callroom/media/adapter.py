"""Media session adapter.

Owns the media platform handle and the local capture tracks. Remote
publications are subscribed, attached to render targets and recorded in the
participant registry.
"""

from __future__ import annotations

import logging

from callroom.core.session_runtime.api import (
    Error,
    ParticipantLeft,
    SessionEvent,
)
from callroom.core.session_runtime.ports import (
    FAILED,
    MEDIA_KINDS,
    NOT_STARTED,
    READY,
    STARTING,
    LocalTrack,
    MediaEvent,
    MediaPlatformPort,
    RenderPort,
    UserPublished,
    UserUnpublished,
)
from callroom.errors import MediaError, NotJoined, TeardownError
from callroom.media.registry import RemoteParticipantRegistry

log = logging.getLogger("media")


class MediaSessionAdapter:
    def __init__(
        self,
        platform: MediaPlatformPort,
        registry: RemoteParticipantRegistry,
        *,
        render: RenderPort | None = None,
    ):
        self._platform = platform
        self._render = render
        self.registry = registry
        self.join_phase = NOT_STARTED
        self.publish_phase = NOT_STARTED
        self._audio: LocalTrack | None = None
        self._video: LocalTrack | None = None
        self.microphone_muted = False
        self.camera_enabled = True

    async def join(self, app_id: str, token: str, room: str, local_id: str) -> None:
        self.join_phase = STARTING
        try:
            await self._platform.join(app_id, token, room, local_id)
        except Exception as e:
            self.join_phase = FAILED
            raise MediaError(f"failed to join media channel {room}: {type(e).__name__}: {e}") from e
        self.join_phase = READY
        log.info(f"Joined media channel {room} as {local_id}")

    async def publish_local(self) -> tuple[LocalTrack, LocalTrack]:
        """Capture microphone and camera and publish both, or neither."""
        if self.join_phase != READY:
            raise NotJoined("media channel has not been joined")
        self.publish_phase = STARTING
        try:
            audio, video = await self._platform.create_local_tracks()
        except Exception as e:
            self.publish_phase = FAILED
            raise MediaError(f"failed to create local tracks: {type(e).__name__}: {e}") from e

        try:
            await self._platform.publish([audio, video])
        except Exception as e:
            self.publish_phase = FAILED
            for track in (audio, video):
                try:
                    track.close()
                except Exception:
                    log.warning("Closing unpublished local track failed", exc_info=True)
            raise MediaError(f"failed to publish local tracks: {type(e).__name__}: {e}") from e

        self._audio, self._video = audio, video
        self.microphone_muted = False
        self.camera_enabled = True
        self.publish_phase = READY
        log.info("Local tracks created and published")
        return audio, video

    def set_microphone_muted(self, muted: bool) -> bool:
        if self.publish_phase != READY or self._audio is None:
            return False
        self._audio.set_muted(muted)
        self.microphone_muted = muted
        log.info(f"Microphone {'muted' if muted else 'unmuted'}")
        return True

    def set_camera_enabled(self, enabled: bool) -> bool:
        if self.publish_phase != READY or self._video is None:
            return False
        self._video.set_enabled(enabled)
        self.camera_enabled = enabled
        log.info(f"Camera {'on' if enabled else 'off'}")
        return True

    async def leave(self) -> list[TeardownError]:
        """Leave the media channel and release every local and remote track."""
        failures: list[TeardownError] = []

        if self.join_phase in (STARTING, READY):
            try:
                await self._platform.leave()
            except Exception as e:
                log.warning(f"Leaving media channel failed: {e}")
                failures.append(TeardownError("leave media", e))

        for name, track in (("close audio", self._audio), ("close video", self._video)):
            if track is None:
                continue
            try:
                track.close()
            except Exception as e:
                log.warning(f"{name} failed: {e}")
                failures.append(TeardownError(name, e))

        for info in self.registry.snapshot():
            self._detach_all(info.id)
        self.registry.clear()

        self._audio = None
        self._video = None
        self.join_phase = NOT_STARTED
        self.publish_phase = NOT_STARTED
        self.microphone_muted = False
        self.camera_enabled = True
        return failures

    def drop_participant(self, participant_id: str) -> bool:
        """Forget a participant's media. Returns True if anything was held."""
        if participant_id not in self.registry:
            return False
        self._detach_all(participant_id)
        self.registry.remove(participant_id)
        log.info(f"Dropped media of {participant_id}")
        return True

    def _detach(self, participant_id: str, kind: str) -> None:
        if self._render is None:
            return
        try:
            self._render.detach(participant_id, kind)
        except Exception:
            log.warning(f"Detaching {kind} of {participant_id} failed", exc_info=True)

    def _detach_all(self, participant_id: str) -> None:
        participant = self.registry.get(participant_id)
        if participant is None:
            return
        for kind in MEDIA_KINDS:
            if kind in participant.tracks:
                self._detach(participant_id, kind)

    async def handle(self, event: MediaEvent) -> list[SessionEvent]:
        if isinstance(event, UserPublished):
            return await self._on_published(event)
        if isinstance(event, UserUnpublished):
            return self._on_unpublished(event)
        log.debug(f"Ignoring media event {event!r}")
        return []

    async def _on_published(self, event: UserPublished) -> list[SessionEvent]:
        log.info(f"Remote user published: {event.user_id}, media: {event.kind}")
        if event.kind not in MEDIA_KINDS:
            log.warning(f"Unknown media kind {event.kind!r} from {event.user_id}")
            return []
        if self.join_phase != READY:
            log.debug(f"Not in a media channel; ignoring publish from {event.user_id}")
            return []

        try:
            track = await self._platform.subscribe(event.user_id, event.kind)
        except Exception as e:
            log.error(f"Failed to subscribe to {event.user_id}: {e}")
            error = MediaError(f"failed to subscribe to {event.user_id} {event.kind}: {type(e).__name__}: {e}")
            return [Error(phase="subscribe", error=error)]

        try:
            target = self._render.target_for(event.user_id, event.kind) if self._render else None
            track.attach(target)
        except Exception as e:
            log.error(f"Failed to attach {event.kind} of {event.user_id}: {e}")
            try:
                track.stop()
            except Exception:
                log.debug("Stopping unattached track failed", exc_info=True)
            error = MediaError(f"failed to attach {event.user_id} {event.kind}: {type(e).__name__}: {e}")
            return [Error(phase="subscribe", error=error)]

        self.registry.upsert(event.user_id, event.kind, track)
        log.info(f"Subscribed to {event.user_id}'s {event.kind}")
        return []

    def _on_unpublished(self, event: UserUnpublished) -> list[SessionEvent]:
        log.info(f"Remote user unpublished: {event.user_id}, media: {event.kind}")
        participant = self.registry.get(event.user_id)
        if participant is None or event.kind not in participant.tracks:
            return []
        self._detach(event.user_id, event.kind)
        if self.registry.clear_kind(event.user_id, event.kind):
            return [ParticipantLeft(event.user_id)]
        return []
