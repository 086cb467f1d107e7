"""
WhatsApp webhook: Twilio posts inbound messages here (form-encoded; JSON accepted for tests/tools).

Mounted at both /whatsapp/webhook and /webhook/whatsapp. Test mode (X-Test: true header or a
sandbox sender) returns the reply in the response body; otherwise the reply is sent through
the messaging port after a plain 200 acknowledgement.
"""
import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from groupbuy.config import settings
from groupbuy.core.errors import STATUS_BAD_REQUEST, InvalidSender
from groupbuy.db.session import get_db
from groupbuy.services.commands import extract_webhook_fields, parse_command
from groupbuy.services.deal_store import DealStore
from groupbuy.services.messaging import MessagingPort, get_messenger
from groupbuy.services.webhook_handler import WebhookHandler, deliver_reply

router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_payload(request: Request, content_type: str) -> dict[str, Any]:
    """Form, JSON, or best effort for anything else. Never raises on a malformed body."""
    ctype = content_type.lower()
    if "application/x-www-form-urlencoded" in ctype or "multipart/form-data" in ctype:
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return data if isinstance(data, dict) else {}
    except ValueError:
        pass
    try:
        return dict(parse_qsl(raw.decode("utf-8", errors="replace")))
    except ValueError:
        return {}


def _is_test_mode(request: Request, sender: str) -> bool:
    if (request.headers.get("x-test") or "").lower() == "true":
        return True
    return any(number in sender for number in settings.test_mode_number_list())


async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    messenger: MessagingPort = Depends(get_messenger),
):
    content_type = request.headers.get("content-type", "")
    payload = await _read_payload(request, content_type)
    body, sender = extract_webhook_fields(content_type, payload)
    if not body or not sender:
        logger.warning("event=webhook outcome=missing_fields content_type=%s keys=%s", content_type, sorted(payload))
        return JSONResponse(
            status_code=STATUS_BAD_REQUEST,
            content={"error": f"Missing fields: Body={bool(body)}, From={bool(sender)}", "contentType": content_type},
        )
    try:
        command = parse_command(body, sender)
    except InvalidSender as e:
        logger.warning("event=webhook phone=%s outcome=invalid_sender", (sender or "").strip())
        return JSONResponse(status_code=STATUS_BAD_REQUEST, content={"error": e.user_message})

    handler = WebhookHandler(DealStore(db))
    outcome = await run_in_threadpool(handler.handle, command)

    if _is_test_mode(request, command.actor_phone):
        outcome.debug.setdefault("originalMessage", body)
        return {"success": outcome.success, "response": outcome.response, "debug": outcome.debug}

    background_tasks.add_task(deliver_reply, messenger, command.actor_phone, outcome.response)
    return Response(status_code=200)


router.add_api_route("/whatsapp/webhook", whatsapp_webhook, methods=["POST"])
router.add_api_route("/webhook/whatsapp", whatsapp_webhook, methods=["POST"], include_in_schema=False)
