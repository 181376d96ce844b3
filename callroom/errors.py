"""Session exceptions.

One type per failing subsystem so the controller (and whoever renders its
`Error` events) can report failures consistently without scraping strings.
"""

from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for call session errors."""


class BrokerError(SessionError):
    """Credential fetch or parse failure."""

    def __init__(self, reason: str, *, status: int | None = None, url: str | None = None):
        self.reason = reason
        self.status = status
        self.url = url
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.status is not None and self.url:
            return f"Token broker HTTP {self.status} {self.url}: {self.reason}"
        return f"Token broker error: {self.reason}"


class ChannelError(SessionError):
    """Messaging login/join/send failure."""


class MediaError(SessionError):
    """Capture/publish/subscribe/join failure."""


class NotJoined(SessionError):
    """Operation attempted outside the active state."""


class TeardownError(SessionError):
    """Failure during leave. Reported, never blocks the remaining teardown."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(self.__str__())

    def __str__(self) -> str:
        detail = str(self.cause).strip()
        if detail:
            return f"Teardown step {self.step!r} failed: {type(self.cause).__name__}: {detail}"
        return f"Teardown step {self.step!r} failed: {type(self.cause).__name__}"
