"""
Tests for the MCP capability registration
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.server.fastmcp.exceptions import ResourceError, ToolError

from agent_payments.capabilities.server import create_mcp_server
from agent_payments.models import PaymentInstance


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.start_capture = AsyncMock(return_value=PaymentInstance(sid="PA1"))
    gw.update_capture_field = AsyncMock(return_value=None)
    gw.finish_capture = AsyncMock(return_value=PaymentInstance(sid="PA1"))
    return gw


@pytest.fixture
def server(store, gateway):
    return create_mcp_server(store, gateway)


@pytest.mark.asyncio
async def test_all_tools_registered(server):
    names = {tool.name for tool in await server.list_tools()}

    assert names == {
        "startPaymentCapture",
        "captureCardNumber",
        "captureSecurityCode",
        "captureExpirationDate",
        "completePaymentCapture",
        "resetPaymentField",
    }


@pytest.mark.asyncio
async def test_status_resource_template_registered(server):
    templates = await server.list_resource_templates()

    assert [t.uriTemplate for t in templates] == ["payment://{call_sid}/{payment_sid}"]
    assert templates[0].name == "getPaymentStatus"


@pytest.mark.asyncio
async def test_start_tool_creates_session(server, store, gateway):
    await server.call_tool("startPaymentCapture", {"call_sid": "CA1"})

    gateway.start_capture.assert_awaited_once_with("CA1")
    assert store.get_session("CA1", "PA1") is not None


@pytest.mark.asyncio
async def test_failed_tool_is_reported_as_tool_error(server):
    with pytest.raises(ToolError, match="Failed to start capture of card number"):
        await server.call_tool("captureCardNumber", {"call_sid": "CA1", "payment_sid": "PA1"})


@pytest.mark.asyncio
async def test_read_status_resource(server, store):
    store.create_session("CA1", "PA1")

    contents = list(await server.read_resource("payment://CA1/PA1"))

    assert '"paymentSid": "PA1"' in contents[0].content


@pytest.mark.asyncio
async def test_read_unknown_status_resource(server):
    with pytest.raises((ResourceError, ValueError), match="PA404"):
        await server.read_resource("payment://CA1/PA404")


@pytest.mark.asyncio
async def test_next_step_prompt(server, store):
    store.create_session("CA1", "PA1")

    result = await server.get_prompt("PaymentNextStep", {"call_sid": "CA1", "payment_sid": "PA1"})

    assert result.messages[0].role == "assistant"
    assert "captureCardNumber" in result.messages[0].content.text
