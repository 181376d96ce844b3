"""Remote participant registry.

In-memory `id -> RemoteParticipant` for the participants whose media we are
currently subscribed to. An entry exists iff at least one media kind is held.
All operations are idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from callroom.core.session_runtime.api import RemoteParticipantInfo
from callroom.core.session_runtime.ports import AUDIO, VIDEO, RemoteTrack

log = logging.getLogger("media.registry")


@dataclass
class RemoteParticipant:
    id: str
    tracks: dict[str, RemoteTrack] = field(default_factory=dict)

    @property
    def has_audio(self) -> bool:
        return AUDIO in self.tracks

    @property
    def has_video(self) -> bool:
        return VIDEO in self.tracks

    def info(self) -> RemoteParticipantInfo:
        return RemoteParticipantInfo(self.id, self.has_audio, self.has_video)


def _stop(track: RemoteTrack, participant_id: str, kind: str) -> None:
    try:
        track.stop()
    except Exception:
        log.warning(f"Stopping {kind} track of {participant_id} failed", exc_info=True)


class RemoteParticipantRegistry:
    def __init__(self) -> None:
        self._participants: dict[str, RemoteParticipant] = {}

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)

    def get(self, participant_id: str) -> RemoteParticipant | None:
        return self._participants.get(participant_id)

    def snapshot(self) -> list[RemoteParticipantInfo]:
        return [p.info() for p in self._participants.values()]

    def upsert(self, participant_id: str, kind: str, track: RemoteTrack) -> bool:
        """Record a subscribed track. Returns True if the entry is new."""
        participant = self._participants.get(participant_id)
        created = participant is None
        if participant is None:
            participant = RemoteParticipant(participant_id)
            self._participants[participant_id] = participant

        previous = participant.tracks.get(kind)
        if previous is not None and previous is not track:
            _stop(previous, participant_id, kind)
        participant.tracks[kind] = track
        return created

    def clear_kind(self, participant_id: str, kind: str) -> bool:
        """Drop one media kind. Returns True if that emptied (and removed) the entry."""
        participant = self._participants.get(participant_id)
        if participant is None:
            return False
        track = participant.tracks.pop(kind, None)
        if track is not None:
            _stop(track, participant_id, kind)
        if participant.tracks:
            return False
        del self._participants[participant_id]
        return True

    def remove(self, participant_id: str) -> RemoteParticipant | None:
        participant = self._participants.pop(participant_id, None)
        if participant is None:
            return None
        for kind, track in participant.tracks.items():
            _stop(track, participant_id, kind)
        return participant

    def clear(self) -> None:
        for participant_id in list(self._participants):
            self.remove(participant_id)
