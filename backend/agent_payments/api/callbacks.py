"""
Payment Status Callback Endpoint

Receives the vendor's asynchronous status callbacks and forwards them to
the PaymentCallbackHandler stored on app.state.

Query Parameters:
    lastCall: Operation that triggered the callback (startCapture,
              payment-card-number, security-code, expiration-date,
              finishCapture)

Body:
    application/x-www-form-urlencoded (vendor default) or JSON. When
    signatures are enforced, a JSON body must match the signed bodySHA256
    query parameter.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse

from ..exceptions import InvalidCallbackSignatureError
from ..services.signature_service import verify_body_hash, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()


def _is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


async def _read_params(request: Request) -> List[Tuple[str, Any]]:
    if _is_json(request):
        body = json.loads(await request.body())
        return list(body.items()) if isinstance(body, dict) else []

    form = await request.form()
    return [(name, value) for name, value in form.multi_items()]


def _signed_url(request: Request, public_base_url: str) -> str:
    """URL as the vendor saw it: public base + request path + query."""
    url = public_base_url.rstrip("/") + request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


@router.post("/", response_class=PlainTextResponse)
async def receive_payment_callback(
    request: Request,
    last_call: Optional[str] = Query(None, alias="lastCall", description="Operation that triggered the callback")
) -> PlainTextResponse:
    """
    Apply one payment status callback.

    Returns:
        200 "OK" once the callback has been applied (or logged and dropped)
        403 if the X-Twilio-Signature header or the JSON body hash does not verify
        500 "Error processing callback" if the body could not be processed
    """
    settings = request.app.state.settings
    handler = request.app.state.callback_handler

    try:
        params = await _read_params(request)
    except Exception as e:
        logger.error(f"Unreadable callback body: {e}", exc_info=True)
        return PlainTextResponse("Error processing callback", status_code=500)

    if settings.twilio_auth_token:
        url = _signed_url(request, settings.status_callback_url)
        signature = request.headers.get("x-twilio-signature", "")
        is_json = _is_json(request)
        form_params = [] if is_json else params
        if not verify_signature(settings.twilio_auth_token, url, form_params, signature):
            raise InvalidCallbackSignatureError(
                "Callback signature verification failed",
                {"url": url, "last_call": last_call}
            )
        if is_json and not verify_body_hash(await request.body(), request.query_params.get("bodySHA256", "")):
            raise InvalidCallbackSignatureError(
                "Callback body does not match bodySHA256",
                {"url": url, "last_call": last_call}
            )

    body: Dict[str, Any] = dict(params)

    try:
        handler.process_callback(last_call, body)
    except Exception as e:
        logger.error(f"Error processing callback: {e}", exc_info=True)
        return PlainTextResponse("Error processing callback", status_code=500)

    return PlainTextResponse("OK")
