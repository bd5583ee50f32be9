from __future__ import annotations
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .contracts import (
    RegisterRequest, LoginRequest, UpdateProfileRequest, ChangePasswordRequest, ForgotPasswordRequest,
    MetaPayload, ProfileResult, UWFResponse,
)
from .deps import get_auth_service, get_bearer_token
from .errors import AuthServiceException, ValidationFailed
from .service import AuthService

logger = logging.getLogger("authservice.routes")

router = APIRouter(tags=["auth"])


def _meta(request: Request) -> MetaPayload:
    return MetaPayload(
        trace_id=getattr(request.state, "trace_id", None),
        request_id=getattr(request.state, "request_id", None),
    )

def _uwf_ok(request: Request, result: Any) -> UWFResponse:
    return UWFResponse(ok=True, result=result, meta=_meta(request))

def _uwf_err(request: Request, err: AuthServiceException) -> JSONResponse:
    body = UWFResponse(ok=False, error=err.to_payload(), meta=_meta(request))
    return JSONResponse(status_code=err.status_code, content=body.model_dump(mode="json"))


# ---- Exception handlers (registered by the app factory) ----

async def auth_exception_handler(request: Request, ex: AuthServiceException) -> JSONResponse:
    return _uwf_err(request, ex)

async def request_validation_handler(request: Request, ex: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) or "body" for err in ex.errors()})
    logger.info("request.validation_failed path=%s fields=%s", request.url.path, ",".join(fields))
    return _uwf_err(request, ValidationFailed("Malformed request body", details={"fields": fields}))

def install_exception_handlers(app) -> None:
    app.add_exception_handler(AuthServiceException, auth_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


# ---- Routes ----

@router.post("/register", response_model=UWFResponse, status_code=status.HTTP_201_CREATED)
def register(request: Request, body: RegisterRequest, svc: AuthService = Depends(get_auth_service)):
    return _uwf_ok(request, svc.register(body))

@router.post("/login", response_model=UWFResponse)
def login(request: Request, body: LoginRequest, svc: AuthService = Depends(get_auth_service)):
    return _uwf_ok(request, svc.login(body))

@router.get("/profile", response_model=UWFResponse)
def get_profile(request: Request, token: str = Depends(get_bearer_token), svc: AuthService = Depends(get_auth_service)):
    return _uwf_ok(request, ProfileResult(user=svc.get_profile(token)))

@router.patch("/profile", response_model=UWFResponse)
def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    token: str = Depends(get_bearer_token),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf_ok(request, ProfileResult(user=svc.update_profile(token, body)))

@router.put("/change-password", response_model=UWFResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    token: str = Depends(get_bearer_token),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf_ok(request, svc.change_password(token, body))

@router.post("/forgot-password", response_model=UWFResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest, svc: AuthService = Depends(get_auth_service)):
    return _uwf_ok(request, svc.forgot_password(body))

@router.get("/users/{username}", response_model=UWFResponse)
def lookup_user(
    username: str,
    request: Request,
    token: str = Depends(get_bearer_token),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf_ok(request, ProfileResult(user=svc.lookup_username(token, username)))
