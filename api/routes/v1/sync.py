"""
api/routes/v1/sync.py -- Manual "sync now" for one owner.

Runs the same AuditService pass the scheduler runs. Per-entity failures are
absorbed by the sweep and show up only as counts and unchanged lastChecked
values; anything that escapes becomes the generic 500 envelope.
"""

from fastapi import APIRouter, HTTPException, Request

from api.dependencies import require_owner
from api.limiter import limiter
from api.models import ErrorDetail, SyncResponse
from core.config import get_settings
from core.errors import SweepInProgress
from core.sweep import AuditService

router = APIRouter()


@limiter.limit(get_settings().sync_rate_limit)
@router.post("/sync/{owner_id}", response_model=SyncResponse)
def sync_owner(request: Request, owner_id: int) -> SyncResponse:
    require_owner(request, owner_id)
    audit: AuditService = request.app.state.audit
    try:
        stats = audit.sync_owner(owner_id)
    except SweepInProgress as e:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(code="sweep_in_progress", message=str(e)).model_dump(),
        ) from e
    return SyncResponse(
        success=True,
        timestamp=stats.timestamp,
        checked=stats.checked,
        updated=stats.updated,
        skipped=stats.skipped,
        failed=stats.failed,
    )
