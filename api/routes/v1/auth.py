"""
api/routes/v1/auth.py -- Owner registration and login.

Routes:
  POST /api/v1/auth/register  -- create an owner account; 400 on duplicate name
  POST /api/v1/auth/login     -- check credentials; 401 on mismatch

No sessions or tokens are issued: the UI keeps the returned owner id and
passes it to the owner-scoped routes.

Security:
  POST /login is rate-limited to 10 requests/minute per IP.
  authenticate_user() equalizes timing between unknown users and wrong
  passwords -- use it, never inline get_by_username() + verify_password().
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import CredentialsRequest, ErrorDetail, OwnerOut
from auth.models import User
from auth.passwords import authenticate_user, hash_password
from auth.store import UserStore

logger = logging.getLogger("expirywatch.api.auth")

router = APIRouter()


@limiter.limit("5/minute")
@router.post("/auth/register", response_model=OwnerOut, status_code=201)
def register(request: Request, body: CredentialsRequest) -> OwnerOut:
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(User(username=body.username, hashed_password=hash_password(body.password)))
    except IntegrityError as e:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="username_taken", message="Username already exists.").model_dump(),
        ) from e
    logger.info("Owner registered: %s (id=%d)", body.username, user_id)
    return OwnerOut(id=user_id, username=body.username)


@limiter.limit("10/minute")
@router.post("/auth/login", response_model=OwnerOut)
def login(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Same generic error for wrong username and wrong password."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
    else:
        resp = JSONResponse(status_code=200, content=OwnerOut(id=user.id, username=user.username).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp
