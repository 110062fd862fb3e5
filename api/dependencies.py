"""
api/dependencies.py -- Helpers shared by the v1 route modules.

Route handlers reach long-lived services through request.app.state, which the
lifespan in api/main.py populates: store, user_store, verifier, mailer, audit.
"""

from fastapi import HTTPException, Request

from api.models import ErrorDetail
from core.errors import VerificationError, VerificationErrorKind

# Timeouts are the only verification failure worth retrying as-is.
_VERIFICATION_STATUS = {
    VerificationErrorKind.NO_DATA: 404,
    VerificationErrorKind.UNREACHABLE: 404,
    VerificationErrorKind.TIMEOUT: 504,
}


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail=ErrorDetail(code="not_found", message=message).model_dump())


def require_owner(request: Request, owner_id: int) -> None:
    """Raise 404 unless owner_id names a registered owner."""
    if request.app.state.user_store.get_by_id(owner_id) is None:
        raise not_found(f"Owner {owner_id} not found.")


def verification_failed(error: VerificationError, message: str, status_code: int = 0) -> HTTPException:
    """Map a VerificationError to an HTTPException in the standard envelope.

    status_code overrides the kind-based default, e.g. 400 on edits where the
    caller supplied the name that could not be verified.
    """
    return HTTPException(
        status_code=status_code or _VERIFICATION_STATUS[error.kind],
        detail=ErrorDetail(code=f"verification_{error.kind.value}", message=message, detail=str(error)).model_dump(),
    )
