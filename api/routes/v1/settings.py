"""
api/routes/v1/settings.py -- Per-owner notification settings.

  PUT  /settings                              -- save SMTP profile + alert policy
  POST /settings/test-email                   -- send one message with a profile
  POST /settings/generate-test-credentials    -- disposable Ethereal account

PUT /settings validates the full OwnerSettings document, so alerts enabled
without a recipient, or auth required without credentials, are a 422 at save
time instead of a silent skip during the next sweep. Legacy key names
(user, pass, secure, useAuth, fromEmail, toEmail) are accepted and upgraded.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import require_owner
from api.limiter import limiter
from api.models import EmailTestRequest, EmailTestResponse, ErrorDetail, SettingsUpdate, SuccessResponse
from core.config import get_settings
from core.mailer import Mailer, create_test_account
from core.notifications import SMTPProfile
from tracker.store import TrackerStore

logger = logging.getLogger("expirywatch.api.settings")

router = APIRouter()

_TEST_SUBJECT = "ExpiryWatch Test Email"
_TEST_BODY = "This is a test email from your ExpiryWatch instance. If you received this, your SMTP settings are correct!"


@router.put("/settings", response_model=SuccessResponse)
def save_settings(request: Request, body: SettingsUpdate) -> SuccessResponse:
    require_owner(request, body.owner_id)
    store: TrackerStore = request.app.state.store
    store.save_owner_settings(body.owner_id, body.to_owner_settings())
    logger.info(
        "Settings saved for owner %d (alerts %s)",
        body.owner_id,
        "on" if body.notifications.enabled else "off",
    )
    return SuccessResponse()


@limiter.limit("5/minute")
@router.post("/settings/test-email", response_model=EmailTestResponse)
def send_test_email(request: Request, body: EmailTestRequest) -> JSONResponse:
    """Send a test message. 200 with success=true, or 502 with the transport error."""
    mailer: Mailer = request.app.state.mailer
    result = mailer.send(body.smtp, _TEST_SUBJECT, _TEST_BODY)
    payload = EmailTestResponse(
        success=result.success,
        message="Test email sent successfully!" if result.success else f"Failed to send email: {result.message}",
        preview_url=result.preview_url,
    )
    return JSONResponse(status_code=200 if result.success else 502, content=payload.model_dump(by_alias=True))


@limiter.limit("5/minute")
@router.post("/settings/generate-test-credentials", response_model=SMTPProfile)
def generate_test_credentials(request: Request) -> SMTPProfile:
    settings = get_settings()
    profile = create_test_account(settings.test_account_api_url, timeout=settings.smtp_timeout)
    if profile is None:
        raise HTTPException(
            status_code=502,
            detail=ErrorDetail(code="upstream_unavailable", message="Failed to create test account.").model_dump(),
        )
    return profile
