"""
Agent Payments MCP Server - Application Entry Point

Runs two surfaces in one event loop:
- FastAPI callback receiver (uvicorn, HTTP) for vendor status callbacks
- MCP server on stdio for the orchestrating LLM client

Stdout belongs to the MCP protocol, so every log line goes to stderr.
"""
import argparse
import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .api.callbacks import router as callbacks_router
from .capabilities.log_forwarding import McpLogForwarder
from .capabilities.server import create_mcp_server
from .config import Settings, get_settings
from .exceptions import AgentPaymentError, InvalidCallbackSignatureError
from .services.callback_service import PaymentCallbackHandler
from .services.payment_state_store import PaymentStateStore
from .services.scheduler import SessionEvictionScheduler
from .services.twilio_gateway import TwilioPaymentGateway

logger = logging.getLogger(__name__)

USAGE = "agent-payments-mcp <accountSid> <apiKey> <apiSecret>"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def create_callback_app(
    handler: PaymentCallbackHandler,
    settings: Settings,
    scheduler: Optional[SessionEvictionScheduler] = None
) -> FastAPI:
    """
    Build the callback receiver application.

    Args:
        handler: Callback handler bound to the shared session store
        settings: Deployment settings (signature validation, public URL)
        scheduler: Optional eviction scheduler started with the app

    Returns:
        FastAPI application serving POST / and GET /health
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        - Startup: start the session eviction scheduler
        - Shutdown: stop it
        """
        logger.info("Starting payment callback receiver...")
        if settings.twilio_auth_token:
            logger.info("Callback signature validation enabled")
        else:
            logger.warning("TWILIO_AUTH_TOKEN not set; callback signatures are not validated")

        if scheduler is not None:
            scheduler.start()

        logger.info("Callback receiver startup complete")

        yield

        logger.info("Shutting down payment callback receiver...")
        if scheduler is not None:
            try:
                scheduler.shutdown(wait=False)
            except Exception as e:
                logger.error(f"Error during scheduler shutdown: {e}")

    app = FastAPI(
        title="Agent Payments Callback Receiver",
        description="Status callbacks for agent-assisted card capture",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.callback_handler = handler

    @app.exception_handler(AgentPaymentError)
    async def payment_error_handler(request: Request, exc: AgentPaymentError):
        """
        Handle payment errors with the standard error body.

        Signature failures are 403; anything else is 400.
        """
        logger.warning(
            f"Payment error: {exc.error_code} - {exc.message}",
            extra={"details": exc.details}
        )
        status_code = 403 if isinstance(exc, InvalidCallbackSignatureError) else 400
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Catch-all handler; logs the exception and returns a generic body."""
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "internal_error",
                "message": "An unexpected error occurred",
                "details": {}
            }
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    app.include_router(callbacks_router, tags=["Callbacks"])
    return app


class CallbackServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host process."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


async def _wait_until_started(server: uvicorn.Server, task: asyncio.Task) -> None:
    while not server.started:
        if task.done():
            # serve() returned without binding, e.g. the port is taken
            task.result()
            raise RuntimeError("Callback receiver exited before it started listening")
        await asyncio.sleep(0.05)


async def serve(settings: Settings) -> None:
    """
    Run the callback receiver and the MCP stdio server until stdin closes.

    The gateway is only given its callback URL once the receiver is
    listening, so no vendor request can name an unreachable callback.
    """
    store = PaymentStateStore()
    handler = PaymentCallbackHandler(store)
    scheduler = SessionEvictionScheduler(
        store,
        ttl_minutes=settings.session_ttl_minutes,
        interval_minutes=settings.session_prune_interval_minutes,
    )
    gateway = TwilioPaymentGateway(settings)
    log_forwarder = McpLogForwarder()
    log_forwarder.install()

    app = create_callback_app(handler, settings, scheduler)
    server = CallbackServer(uvicorn.Config(
        app,
        host=settings.callback_host,
        port=settings.callback_port,
        log_level=settings.log_level.lower(),
        log_config=None,
        access_log=False,
    ))
    server_task = asyncio.create_task(server.serve())

    try:
        await _wait_until_started(server, server_task)
        logger.info(f"Callback receiver listening on {settings.callback_host}:{settings.callback_port}")
        gateway.set_status_callback(settings.status_callback_url)

        mcp_server = create_mcp_server(store, gateway, log_forwarder)
        logger.info("MCP server running on stdio")
        await mcp_server.run_stdio_async()
    finally:
        log_forwarder.uninstall()
        server.should_exit = True
        if not server_task.done():
            await server_task
        await gateway.aclose()
        logger.info("Agent payments server stopped")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="agent-payments-mcp",
        usage=USAGE,
        description="MCP server for agent-assisted payment card capture",
    )
    parser.add_argument("account_sid", nargs="?", help="Twilio Account SID")
    parser.add_argument("api_key", nargs="?", help="Twilio API Key SID")
    parser.add_argument("api_secret", nargs="?", help="Twilio API Key Secret")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """
    Command-line credentials override the environment.

    Raises:
        pydantic.ValidationError: If an environment value is invalid
    """
    settings = base or get_settings()
    overrides = {
        "twilio_account_sid": args.account_sid,
        "twilio_api_key": args.api_key,
        "twilio_api_secret": args.api_secret,
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v})


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        print(f"Usage: {USAGE}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)

    if not settings.has_credentials:
        logger.error("Missing Twilio credentials (account SID, API key and API secret)")
        print(f"Usage: {USAGE}", file=sys.stderr)
        return 1

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
