"""
api/routes/v1/domains.py -- Tracked domain management.

Routes (bulk delete is registered before /domains/{domain_id} so "bulk" is
never captured as an id):
  POST   /domains              -- verify, then start tracking
  DELETE /domains/bulk         -- delete several by id
  PUT    /domains/{domain_id}  -- rename / relabel, re-verifies the name
  DELETE /domains/{domain_id}

A domain is only stored after a successful lookup; nothing is persisted with
made-up registry data unless DOMAIN_FALLBACK is enabled.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Body, Request

from api.dependencies import not_found, require_owner, verification_failed
from api.limiter import limiter
from api.models import BulkDeleteRequest, BulkDeleteResponse, DomainCreate, DomainOut, DomainUpdate, SuccessResponse
from core.classifier import classify
from core.verifier import Verifier, normalize_host
from tracker.models import TrackedDomain
from tracker.store import TrackerStore

router = APIRouter()


@limiter.limit("30/minute")
@router.post("/domains", response_model=DomainOut, status_code=201)
def create_domain(request: Request, body: DomainCreate) -> DomainOut:
    require_owner(request, body.owner_id)
    store: TrackerStore = request.app.state.store
    verifier: Verifier = request.app.state.verifier
    name = normalize_host(body.name)
    result = verifier.verify_domain(name)
    if not result.ok:
        raise verification_failed(result.error, f"Could not verify domain {name}.")
    domain = TrackedDomain(
        owner_id=body.owner_id,
        name=name,
        registrar=result.info.registrar,
        expiry_date=result.info.expiry.isoformat(),
        status=classify(result.info.expiry).status.value,
        last_checked=datetime.now(timezone.utc).isoformat(),
        managed_by=body.managed_by,
    )
    domain_id = store.create_domain(domain)
    return DomainOut.from_domain(store.get_domain(domain_id))


@router.delete("/domains/bulk", response_model=BulkDeleteResponse)
def delete_domains(request: Request, body: BulkDeleteRequest = Body(...)) -> BulkDeleteResponse:
    store: TrackerStore = request.app.state.store
    return BulkDeleteResponse(deleted=store.delete_domains(body.ids))


@limiter.limit("30/minute")
@router.put("/domains/{domain_id}", response_model=DomainOut)
def update_domain(request: Request, domain_id: int, body: DomainUpdate) -> DomainOut:
    """Apply a user edit. The (possibly new) name is verified before anything is written."""
    store: TrackerStore = request.app.state.store
    verifier: Verifier = request.app.state.verifier
    if store.get_domain(domain_id) is None:
        raise not_found("Domain not found.")
    name = normalize_host(body.name)
    result = verifier.verify_domain(name)
    if not result.ok:
        raise verification_failed(result.error, "Could not verify the updated domain name.", status_code=400)
    updated = store.update_domain(
        domain_id,
        name=name,
        managed_by=body.managed_by,
        registrar=result.info.registrar,
        expiry_date=result.info.expiry.isoformat(),
        status=classify(result.info.expiry).status.value,
        last_checked=datetime.now(timezone.utc).isoformat(),
    )
    if not updated:
        raise not_found("Domain not found.")
    return DomainOut.from_domain(store.get_domain(domain_id))


@router.delete("/domains/{domain_id}", response_model=SuccessResponse)
def delete_domain(request: Request, domain_id: int) -> SuccessResponse:
    store: TrackerStore = request.app.state.store
    if not store.delete_domain(domain_id):
        raise not_found("Domain not found.")
    return SuccessResponse()
