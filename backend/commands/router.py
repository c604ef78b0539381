import structlog

from commands.types import CommandContext, CommandHandler, error
from proxy.types import CommandRequest, TextComponent

logger = structlog.get_logger()


class CommandRouter:
    """
    Route command lines typed by players to registered handlers.

    Only the first word selects the handler; the handler parses the rest.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}

    def register(self, name: str, handler: CommandHandler) -> None:
        key = name.lower()
        if key in self._handlers:
            raise ValueError(f"Command '{name}' is already registered")
        self._handlers[key] = handler

    @property
    def command_names(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, request: CommandRequest) -> list[TextComponent]:
        words = request.command.strip().removeprefix("/").split()
        if not words:
            return error("Empty command.")

        name, args = words[0].lower(), words[1:]
        handler = self._handlers.get(name)
        if handler is None:
            return error(f"Unknown command '{name}'.")

        source = request.source.username if request.source is not None else "console"
        logger.debug("dispatching command", command=name, source=source)
        return await handler(CommandContext(source=request.source, name=name, args=args))
