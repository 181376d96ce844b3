"""Session runtime (core orchestration).

This package implements a single call session with:
- ordered join (credentials, messaging channel, media channel)
- one serialized event channel for every platform callback
- best-effort teardown on leave and on failed joins

The token service, messaging network and media platform are injected via ports.
"""

from callroom.core.session_runtime.runtime import SessionController

__all__ = ["SessionController"]
