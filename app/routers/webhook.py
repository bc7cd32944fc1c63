import hmac

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger, mask_phone
from app.schemas.webhook import WebhookProbeResponse, WebhookResponse
from app.services.message_service import process_inbound_message
from app.services.payload_normalizer import normalize_request_body
from app.services.zapi_service import has_credentials

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])

WEBHOOK_SECRET_HEADERS = ("X-Webhook-Secret", "X-Webhook-Token", "X-WhatsApp-Signature", "Client-Token")


def _get_request_webhook_secret(request: Request) -> str | None:
    for header in WEBHOOK_SECRET_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def _check_webhook_secret(request: Request) -> None:
    expected = settings.webhook_secret
    if not expected:
        return
    provided = _get_request_webhook_secret(request)
    if not provided or not hmac.compare_digest(provided, expected):
        logger.warning("Rejected webhook with invalid secret", extra={"context": {"path": request.url.path}})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


async def _read_body(request: Request) -> bytes | None:
    try:
        return await request.body()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return None


def handle_raw_webhook(db: Session, raw_body: bytes | None) -> WebhookResponse:
    """Normalize and process one callback body. Always returns a response, never raises."""
    normalized = normalize_request_body(raw_body)
    if not normalized.ok:
        logger.info(
            "Webhook payload ignored",
            extra={"context": {"reason": normalized.reason, "error": normalized.error, **normalized.details}},
        )
        if normalized.reason == "invalid_json":
            return WebhookResponse.error("invalid_json")
        return WebhookResponse.ignored(normalized.reason, phone=normalized.details.get("phone"))

    message = normalized.value
    try:
        return process_inbound_message(db, message)
    except Exception:
        db.rollback()
        logger.exception(
            "Unhandled error while processing webhook",
            extra={"context": {"phone": mask_phone(message.phone), "message_id": message.message_id}},
        )
        return WebhookResponse.error("internal_error", phone=message.phone, message_id=message.message_id)


async def _handle_webhook_request(request: Request, db: Session) -> WebhookResponse:
    _check_webhook_secret(request)
    if not has_credentials():
        logger.error("Z-API credentials missing, refusing webhook")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Z-API credentials not configured")
    raw_body = await _read_body(request)
    # The pipeline blocks on provider calls and run polling.
    return await run_in_threadpool(handle_raw_webhook, db, raw_body)


@router.post("/webhook/whatsapp/receive", response_model=WebhookResponse, response_model_exclude_none=True)
async def receive_whatsapp_message(request: Request, db: Session = Depends(get_db)):
    """Z-API "on message received" callback."""
    return await _handle_webhook_request(request, db)


@router.get("/webhook/whatsapp/receive", response_model=WebhookProbeResponse)
async def probe_whatsapp_webhook():
    """Configuration probe for provider UI checks; real webhooks must use POST."""
    return WebhookProbeResponse(
        has_zapi_instance=bool(settings.zapi_instance_id),
        has_zapi_token=bool(settings.zapi_token),
        has_zapi_client_token=bool(settings.zapi_client_token),
        has_openai_key=bool(settings.openai_api_key),
        has_webhook_secret=bool(settings.webhook_secret),
    )


@router.post("/whatsapp/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def receive_whatsapp_message_legacy(request: Request, db: Session = Depends(get_db)):
    """Legacy callback path kept for instances still pointing at it."""
    return await _handle_webhook_request(request, db)
