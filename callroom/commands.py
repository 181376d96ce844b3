"""Console command handlers for an interactive call session."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, cast

from callroom.core.session_runtime import SessionController
from callroom.errors import SessionError


def command(name: str, *aliases: str, exact: bool = True):
    """Decorator to register a command handler.

    Args:
        name: Primary command name (e.g., "/mute")
        *aliases: Additional names that trigger this command
        exact: If True, requires exact match; if False, allows prefix match
    """

    def decorator(
        func: Callable[..., Awaitable[bool]],
    ) -> Callable[..., Awaitable[bool]]:
        setattr(func, "_command_name", name)
        setattr(func, "_command_aliases", aliases)
        setattr(func, "_command_exact", exact)
        return func

    return decorator


class CommandHandler:
    """Handles slash commands typed into the console.

    Commands are registered via the @command decorator on methods.
    Anything that is not a command is sent to the room as chat.
    """

    def __init__(self, controller: SessionController, reply: Callable[[str], None]):
        self.controller = controller
        self.reply = reply
        self.leave_requested = False
        self._commands: dict[str, tuple[Callable[..., Awaitable[bool]], bool]] = {}
        self._discover_commands()

    def _discover_commands(self) -> None:
        """Find all @command decorated methods and register them."""
        for name in dir(self):
            method = getattr(self, name)
            if callable(method) and hasattr(method, "_command_name"):
                m = cast(Any, method)
                handler = cast(Callable[..., Awaitable[bool]], method)
                exact = cast(bool, m._command_exact)
                self._commands[cast(str, m._command_name)] = (handler, exact)
                for alias in cast(tuple[str, ...], m._command_aliases):
                    self._commands[alias] = (handler, exact)

    async def handle(self, body: str) -> bool:
        """Handle a command. Returns True if command was handled."""
        cmd = body.strip().lower()

        for prefix, (handler, exact) in self._commands.items():
            if exact and cmd == prefix:
                return await handler(body)

        for prefix, (handler, exact) in self._commands.items():
            if not exact and (cmd == prefix or cmd.startswith(prefix + " ")):
                return await handler(body)

        return False

    async def handle_line(self, line: str) -> None:
        body = line.strip()
        if not body:
            return
        if body.startswith("/") and await self.handle(body):
            return
        try:
            await self.controller.send_chat_message(body)
        except SessionError as e:
            self.reply(f"Message not sent: {e}")

    @command("/help")
    async def help(self, _body: str) -> bool:
        self.reply("Commands: /mute, /camera, /who, /dm <peer> <text>, /leave")
        return True

    @command("/mute")
    async def mute(self, _body: str) -> bool:
        """Toggle the microphone."""
        muted = self.controller.toggle_microphone()
        if muted is None:
            self.reply("No microphone track yet.")
        else:
            self.reply("Microphone muted." if muted else "Microphone unmuted.")
        return True

    @command("/camera", "/video")
    async def camera(self, _body: str) -> bool:
        """Toggle the camera."""
        enabled = self.controller.toggle_camera()
        if enabled is None:
            self.reply("No camera track yet.")
        else:
            self.reply("Camera on." if enabled else "Camera off.")
        return True

    @command("/who")
    async def who(self, _body: str) -> bool:
        """List remote participants with media."""
        participants = self.controller.participants()
        if not participants:
            self.reply("No remote participants.")
            return True
        for p in participants:
            kinds = [k for k, on in (("audio", p.has_audio), ("video", p.has_video)) if on]
            self.reply(f"{p.id}: {', '.join(kinds)}")
        return True

    @command("/dm", exact=False)
    async def dm(self, body: str) -> bool:
        """Send a direct message to one peer."""
        parts = body.strip().split(maxsplit=2)
        if len(parts) < 3:
            self.reply("Usage: /dm <peer> <text>")
            return True
        try:
            await self.controller.send_direct_message(parts[1], parts[2])
        except SessionError as e:
            self.reply(f"Message not sent: {e}")
        return True

    @command("/leave", "/quit")
    async def leave(self, _body: str) -> bool:
        self.leave_requested = True
        await self.controller.end_session()
        return True
