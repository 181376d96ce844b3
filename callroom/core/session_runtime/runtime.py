"""SessionController.

This is the single place that owns:
- the session lifecycle (idle -> acquiring -> joining -> active -> leaving)
- join ordering: credentials, then messaging, then media
- the merge of platform events into one outward SessionEvent stream
- teardown, on explicit leave and on failed joins alike

It depends only on ports; adapters never call each other.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Callable

from callroom.core.session_runtime.actor import EventPump
from callroom.core.session_runtime.api import (
    ACQUIRING,
    ACTIVE,
    IDLE,
    JOINING_MEDIA,
    JOINING_MESSAGING,
    KIND_CHAT,
    KIND_SYSTEM,
    LEAVING,
    STATE_LABELS,
    Error,
    EventSinkPort,
    LocalMediaReady,
    MessageReceived,
    ParticipantJoined,
    ParticipantLeft,
    RemoteParticipantInfo,
    Session,
    SessionEvent,
    StatusChanged,
)
from callroom.core.session_runtime.ports import (
    MediaPlatformPort,
    MemberLeft,
    MessagingPlatformPort,
    PlatformEvent,
    RenderPort,
    SignalingPort,
    TokenBrokerPort,
    UserPublished,
    UserUnpublished,
)
from callroom.errors import (
    BrokerError,
    ChannelError,
    MediaError,
    NotJoined,
    SessionError,
    TeardownError,
)
from callroom.media import MediaSessionAdapter, RemoteParticipantRegistry
from callroom.messaging import MessagingChannelAdapter

log = logging.getLogger("session")

_PHASE_ERRORS: dict[str, type[SessionError]] = {
    ACQUIRING: BrokerError,
    JOINING_MESSAGING: ChannelError,
    JOINING_MEDIA: MediaError,
}


def generate_local_id() -> str:
    # Collisions within a room are tolerated, not detected.
    return secrets.token_hex(6)


class _JoinAborted(Exception):
    pass


class SessionController:
    def __init__(
        self,
        *,
        app_id: str,
        tokens: TokenBrokerPort,
        messaging: MessagingPlatformPort,
        media: MediaPlatformPort,
        events: EventSinkPort,
        render: RenderPort | None = None,
        signaling: SignalingPort | None = None,
        generate_id: Callable[[], str] = generate_local_id,
    ):
        self.app_id = app_id
        self._tokens = tokens
        self._events = events
        self._generate_id = generate_id

        self._registry = RemoteParticipantRegistry()
        self._messaging = MessagingChannelAdapter(messaging, signaling=signaling)
        self._media = MediaSessionAdapter(media, self._registry, render=render)
        self._pump = EventPump(dispatch=self._dispatch)
        messaging.bind(self._pump.post)
        media.bind(self._pump.post)

        self.session: Session | None = None
        self.last_error: SessionError | None = None
        self._state = IDLE
        self._abort_requested = False
        self._start_finished: asyncio.Event | None = None
        self._teardown_finished: asyncio.Event | None = None

        # Presence announces arrivals; presence and media can both announce a
        # departure, which is reported once.
        self._present: set[str] = set()
        self._departed: set[str] = set()

    @property
    def state(self) -> str:
        return self._state

    def participants(self) -> list[RemoteParticipantInfo]:
        return self._registry.snapshot()

    async def drain(self) -> None:
        """Wait until queued platform events have been handled."""
        await self._pump.drain()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_session(self, display_name: str, room_name: str) -> None:
        display_name = (display_name or "").strip()
        room_name = (room_name or "").strip()
        if not display_name or not room_name:
            raise ValueError("display name and room name are both required")
        if self._state != IDLE:
            raise SessionError(f"cannot start a session while {self._state}")

        session = Session(
            local_id=self._generate_id(),
            display_name=display_name,
            room_name=room_name,
        )
        self.session = session
        self.last_error = None
        self._abort_requested = False
        self._start_finished = asyncio.Event()
        self._present.clear()
        self._departed.clear()
        self._pump.start()

        try:
            await self._set_state(ACQUIRING)
            credentials = await self._tokens.fetch_credentials(session.local_id, room_name)
            self._check_aborted()

            await self._set_state(JOINING_MESSAGING)
            await self._messaging.connect(session.local_id, credentials.messaging_token)
            await self._messaging.join_channel(room_name)
            self._check_aborted()

            await self._set_state(JOINING_MEDIA)
            await self._media.join(self.app_id, credentials.media_token, room_name, session.local_id)
            audio, video = await self._media.publish_local()
            self._check_aborted()
        except _JoinAborted:
            log.info(f"Join of {room_name} aborted by leave request")
            await self._teardown()
            raise NotJoined("join aborted by leave request") from None
        except asyncio.CancelledError:
            log.info(f"Join of {room_name} cancelled during {self._state}")
            await self._teardown()
            raise
        except Exception as e:
            phase = self._state
            error = e if isinstance(e, SessionError) else _PHASE_ERRORS.get(phase, SessionError)(
                f"{type(e).__name__}: {e}"
            )
            log.error(f"Failed to join room {room_name} during {phase}: {error}")
            session.last_error = error
            self.last_error = error
            await self._emit(Error(phase=phase, error=error))
            await self._teardown()
            if error is e:
                raise
            raise error from e
        else:
            await self._set_state(ACTIVE)
            await self._emit(LocalMediaReady(audio_track=audio, video_track=video))
            await self._emit(MessageReceived(session.display_name, KIND_SYSTEM, f"Welcome to {room_name}!"))
        finally:
            self._start_finished.set()
        log.info(f"Successfully joined room {room_name} as {session.local_id}")

    async def end_session(self) -> None:
        if self._state == IDLE:
            return
        if self._state == LEAVING:
            # Someone else is already tearing down; finish together.
            if self._teardown_finished is not None:
                await self._teardown_finished.wait()
            return

        if self._state != ACTIVE:
            # A join is in flight; it stops after its current step and cleans up.
            self._abort_requested = True
            if self._start_finished is not None:
                await self._start_finished.wait()
            return

        log.info("Leaving room...")
        await self._teardown()
        log.info("Left room")

    def _check_aborted(self) -> None:
        if self._abort_requested:
            raise _JoinAborted()

    async def _teardown(self) -> None:
        """Best-effort release of everything this session holds."""
        self._teardown_finished = asyncio.Event()
        try:
            await self._release()
        finally:
            self._teardown_finished.set()

    async def _release(self) -> None:
        await self._set_state(LEAVING)
        self._pump.stop()

        failures: list[TeardownError] = []
        try:
            failures.extend(await self._media.leave())
        except Exception as e:
            log.exception("Media teardown failed")
            failures.append(TeardownError("media", e))
        try:
            failures.extend(await self._messaging.leave())
        except Exception as e:
            log.exception("Messaging teardown failed")
            failures.append(TeardownError("messaging", e))
        self._registry.clear()

        for failure in failures:
            await self._emit(Error(phase=LEAVING, error=failure))

        self._present.clear()
        self._departed.clear()
        self.session = None
        await self._set_state(IDLE)

    async def _set_state(self, state: str) -> None:
        self._state = state
        if self.session is not None:
            self.session.state = state
        await self._emit(StatusChanged(phase=state, label=STATE_LABELS[state]))

    # -------------------------------------------------------------------------
    # Steady-state operations
    # -------------------------------------------------------------------------

    def _require_active(self) -> Session:
        if self._state != ACTIVE or self.session is None:
            raise NotJoined(f"not in an active session ({self._state})")
        return self.session

    async def send_chat_message(self, text: str) -> None:
        session = self._require_active()
        text = (text or "").strip()
        if not text:
            return
        try:
            await self._messaging.broadcast(text, session.display_name)
        except SessionError as e:
            log.error(f"Failed to send message: {e}")
            self.last_error = e
            await self._emit(Error(phase=ACTIVE, error=e))
            raise
        await self._emit(MessageReceived(session.display_name, KIND_CHAT, text, self_authored=True))

    async def send_direct_message(self, peer_id: str, text: str) -> None:
        session = self._require_active()
        peer_id = (peer_id or "").strip()
        text = (text or "").strip()
        if not peer_id:
            raise ValueError("peer id is required")
        if not text:
            return
        try:
            await self._messaging.send_direct(peer_id, text, session.display_name)
        except SessionError as e:
            log.error(f"Failed to send message to {peer_id}: {e}")
            self.last_error = e
            await self._emit(Error(phase=ACTIVE, error=e))
            raise
        await self._emit(MessageReceived(session.display_name, KIND_CHAT, text, self_authored=True))

    def toggle_microphone(self) -> bool | None:
        """Flip mute. Returns the new muted state, or None without a local track."""
        if not self._media.set_microphone_muted(not self._media.microphone_muted):
            return None
        return self._media.microphone_muted

    def toggle_camera(self) -> bool | None:
        """Flip the camera. Returns the new enabled state, or None without a local track."""
        if not self._media.set_camera_enabled(not self._media.camera_enabled):
            return None
        return self._media.camera_enabled

    # -------------------------------------------------------------------------
    # Event merge
    # -------------------------------------------------------------------------

    async def _dispatch(self, event: PlatformEvent) -> None:
        if isinstance(event, (UserPublished, UserUnpublished)):
            produced = await self._media.handle(event)
        else:
            produced = await self._messaging.handle(event)
            if isinstance(event, MemberLeft):
                # The media platform may never send the matching unpublish.
                self._media.drop_participant(event.member_id)

        for out in produced:
            if isinstance(out, ParticipantJoined):
                if out.participant_id in self._present:
                    continue
                self._present.add(out.participant_id)
                self._departed.discard(out.participant_id)
            elif isinstance(out, ParticipantLeft):
                if out.participant_id in self._departed:
                    continue
                self._departed.add(out.participant_id)
                self._present.discard(out.participant_id)
            elif isinstance(out, Error):
                self.last_error = out.error
            await self._emit(out)

    async def _emit(self, event: SessionEvent) -> None:
        try:
            await self._events.emit(event)
        except Exception:
            log.exception(f"Event sink failed on {type(event).__name__}")
