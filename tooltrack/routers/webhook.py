from functools import lru_cache
from fastapi import APIRouter, Request, Depends, Form, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from tooltrack.database import get_db, get_session_factory
from tooltrack.services.conversation_service import ConversationService
from tooltrack.services.intent_service import IntentOracle
from tooltrack.config import get_settings
from twilio.request_validator import RequestValidator
import logging

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

@lru_cache()
def get_intent_oracle() -> IntentOracle:
    return IntentOracle()

def webhook_url(request: Request) -> str:
    if settings.PUBLIC_WEBHOOK_URL:
        return settings.PUBLIC_WEBHOOK_URL
    url = str(request.url)
    # Render or proxies might change protocol to http, Twilio signs the https URL
    if settings.ENVIRONMENT == "production":
        url = url.replace("http://", "https://", 1)
    return url

async def validate_twilio_request(request: Request):
    if settings.ENVIRONMENT != "production":
        return

    validator = RequestValidator(settings.TWILIO_AUTH_TOKEN)
    form = await request.form()
    params = dict(form)
    signature = request.headers.get("X-Twilio-Signature", "")

    if not validator.validate(webhook_url(request), params, signature):
        logger.warning("Invalid Twilio signature from %s", params.get("From", "unknown"))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

@router.post("/webhook", dependencies=[Depends(validate_twilio_request)])
async def sms_webhook(
    From: str = Form(...),
    To: str = Form(""),
    Body: str = Form(""),
    db: AsyncSession = Depends(get_db),
    oracle: IntentOracle = Depends(get_intent_oracle),
    session_factory = Depends(get_session_factory),
):
    conversation = ConversationService(db, oracle, session_factory)
    response_str = await conversation.handle_message(From, To, Body)
    return Response(content=response_str, media_type="application/xml")
