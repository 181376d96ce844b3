"""Media channel: local capture, remote subscriptions and participant tracking."""

from callroom.media.adapter import MediaSessionAdapter
from callroom.media.registry import RemoteParticipant, RemoteParticipantRegistry

__all__ = ["MediaSessionAdapter", "RemoteParticipant", "RemoteParticipantRegistry"]
