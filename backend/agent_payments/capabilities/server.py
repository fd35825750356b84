"""
MCP Server Registration

Registers the payment capture tools, the status resource and the prompts
on a FastMCP server. Registration is an explicit list; adding a
capability means adding it here.

Error envelopes from the tools are reported as MCP tool errors
(isError=true) carrying the envelope text.

The logging capability is declared; payment events reach the client
through the McpLogForwarder bound on each tool call.
"""
import logging
from typing import Annotated, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ResourceError, ToolError
from mcp.server.fastmcp.prompts.base import AssistantMessage, Message
from mcp.types import LoggingLevel
from pydantic import Field

from ..exceptions import SessionNotFoundError
from ..models.payment_session import PaymentField
from ..services.payment_state_store import PaymentStateStore
from ..services.twilio_gateway import TwilioPaymentGateway
from .log_forwarding import McpLogForwarder
from .prompts import PaymentPrompts
from .resources import PAYMENT_STATUS_URI, PaymentStatusResource
from .tools import PaymentCaptureTools, ToolResult

logger = logging.getLogger(__name__)

SERVER_NAME = "TwilioAgentPaymentServer"
SERVER_INSTRUCTIONS = (
    "Capture a caller's payment card during a live call. Start with the "
    "StartCapture prompt, call one tool per step and read the "
    "getPaymentStatus resource after each tool call before moving on."
)

CallSid = Annotated[str, Field(description="The Twilio Call SID")]
PaymentSid = Annotated[str, Field(description="The Twilio Payment SID")]


def _unwrap(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.content)
    return result.content


def create_mcp_server(
    store: PaymentStateStore,
    gateway: TwilioPaymentGateway,
    log_forwarder: Optional[McpLogForwarder] = None
) -> FastMCP:
    """
    Build the MCP server with every capability bound to store and gateway.

    Args:
        store: Session store shared with the callback receiver
        gateway: Outbound vendor gateway
        log_forwarder: Handler relaying payment events to the client

    Returns:
        Configured FastMCP server (not yet running)
    """
    server = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS)
    tools = PaymentCaptureTools(store, gateway)
    status_resource = PaymentStatusResource(store)
    prompts = PaymentPrompts(store)
    forwarder = log_forwarder or McpLogForwarder()

    def bind_session(ctx: Context) -> None:
        try:
            session = ctx.session
        except ValueError:
            # Invoked outside a client request
            return
        forwarder.bind(session)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @server.tool(name="startPaymentCapture", description="Start a new payment capture session")
    async def start_payment_capture(call_sid: CallSid, ctx: Context) -> str:
        bind_session(ctx)
        return _unwrap(await tools.start_payment_capture(call_sid))

    @server.tool(name="captureCardNumber", description="Start capturing the payment card number")
    async def capture_card_number(call_sid: CallSid, payment_sid: PaymentSid, ctx: Context) -> str:
        bind_session(ctx)
        return _unwrap(await tools.capture_card_number(call_sid, payment_sid))

    @server.tool(name="captureSecurityCode", description="Start capturing the card security code")
    async def capture_security_code(call_sid: CallSid, payment_sid: PaymentSid, ctx: Context) -> str:
        bind_session(ctx)
        return _unwrap(await tools.capture_security_code(call_sid, payment_sid))

    @server.tool(name="captureExpirationDate", description="Start capturing the card expiration date")
    async def capture_expiration_date(call_sid: CallSid, payment_sid: PaymentSid, ctx: Context) -> str:
        bind_session(ctx)
        return _unwrap(await tools.capture_expiration_date(call_sid, payment_sid))

    @server.tool(name="completePaymentCapture", description="Complete the payment capture and tokenize the card")
    async def complete_payment_capture(call_sid: CallSid, payment_sid: PaymentSid, ctx: Context) -> str:
        bind_session(ctx)
        return _unwrap(await tools.complete_payment_capture(call_sid, payment_sid))

    @server.tool(name="resetPaymentField", description="Clear a rejected card field so it can be captured again")
    async def reset_payment_field(
        call_sid: CallSid,
        payment_sid: PaymentSid,
        field: Annotated[PaymentField, Field(description="card_number, security_code or expiration_date")],
        ctx: Context
    ) -> str:
        bind_session(ctx)
        return _unwrap(await tools.reset_payment_field(call_sid, payment_sid, field))

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @server.resource(
        PAYMENT_STATUS_URI,
        name="getPaymentStatus",
        description="Current capture state of a payment session, with the next step",
        mime_type="application/json",
    )
    def get_payment_status(call_sid: str, payment_sid: str) -> str:
        try:
            return status_resource.read(call_sid, payment_sid)
        except SessionNotFoundError as e:
            raise ResourceError(e.message)

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    @server.prompt(name="StartCapture", description="Prompt for starting the payment capture process")
    def start_capture(call_sid: CallSid) -> List[Message]:
        return [AssistantMessage(prompts.start_capture(call_sid))]

    @server.prompt(name="PaymentNextStep", description="Guidance for the next step of a payment capture")
    def payment_next_step(call_sid: CallSid, payment_sid: PaymentSid) -> List[Message]:
        return [AssistantMessage(prompts.next_step(call_sid, payment_sid))]

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    @server._mcp_server.set_logging_level()
    async def set_logging_level(level: LoggingLevel) -> None:
        forwarder.set_client_level(level)

    logger.info(f"Registered payment capture capabilities on {SERVER_NAME}")
    return server
