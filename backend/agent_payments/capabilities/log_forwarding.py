"""
MCP Log Forwarding

Relays callback-ingestion and gateway log records to the connected MCP
client as notifications/message, so the orchestrating LLM sees capture
progress (field captured, field rejected, vendor failures) without polling
getPaymentStatus.

The handler binds to the client session on the first tool call; records
emitted before that are only written to stderr. Records may come from any
thread; delivery always happens on the event loop that owns the session.
"""
import asyncio
import logging
from typing import Iterable, List, Optional, Set

from mcp.server.session import ServerSession
from mcp.types import LoggingLevel

logger = logging.getLogger(__name__)

# Loggers whose records are forwarded to the client
FORWARDED_LOGGERS = (
    "agent_payments.services.callback_service",
    "agent_payments.services.twilio_gateway",
)

MCP_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}


def to_mcp_level(levelno: int) -> LoggingLevel:
    if levelno >= logging.CRITICAL:
        return "critical"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


class McpLogForwarder(logging.Handler):
    """
    logging.Handler that sends records to an MCP client session.

    The client can raise or lower the threshold with logging/setLevel.
    """

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)
        self._session: Optional[ServerSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Task] = set()
        self._installed_on: List[logging.Logger] = []

    @property
    def bound(self) -> bool:
        return self._session is not None

    def bind(self, session: ServerSession) -> None:
        """
        Attach the client session. Must be called on its event loop.
        """
        if session is self._session:
            return
        self._session = session
        self._loop = asyncio.get_running_loop()
        logger.info("Forwarding payment events to the MCP client")

    def set_client_level(self, level: LoggingLevel) -> None:
        """Apply a logging/setLevel request from the client."""
        self.setLevel(MCP_LEVELS[level])
        logger.info(f"MCP client log level set to {level}")

    def install(self, logger_names: Iterable[str] = FORWARDED_LOGGERS) -> None:
        for name in logger_names:
            target = logging.getLogger(name)
            target.addHandler(self)
            self._installed_on.append(target)

    def uninstall(self) -> None:
        for target in self._installed_on:
            target.removeHandler(self)
        self._installed_on = []

    def emit(self, record: logging.LogRecord) -> None:
        if self._session is None or self._loop is None or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(
                self._send,
                to_mcp_level(record.levelno),
                self.format(record),
                record.name,
            )
        except Exception:
            self.handleError(record)

    def _send(self, level: LoggingLevel, message: str, logger_name: str) -> None:
        session = self._session
        if session is None:
            return
        task = asyncio.ensure_future(session.send_log_message(level=level, data=message, logger=logger_name))
        self._pending.add(task)
        task.add_done_callback(self._sent)

    def _sent(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # This module's logger is not forwarded, so this cannot loop
            logger.warning(f"Could not forward log message to MCP client: {task.exception()}")

    async def flush_pending(self) -> None:
        """Wait for every scheduled notification to be sent."""
        await asyncio.sleep(0)
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
