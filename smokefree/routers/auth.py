from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from smokefree.app_factory import ServiceContainer
from smokefree.core.errors import AccountNotFound
from smokefree.db.models import Account
from smokefree.routers.deps import (
    bearer_token,
    client_ip,
    current_claims,
    get_container,
    require_admin,
    user_agent,
)
from smokefree.services.token_service import AccessClaims, TokenPair

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    phone_number: Optional[str] = None
    password: str
    first_name: str = ""
    last_name: str = ""


class LoginRequest(BaseModel):
    identifier: str
    password: str
    remember_me: bool = False


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ResendActivationRequest(BaseModel):
    identifier: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=1)


class RoleRequest(BaseModel):
    role: str


def _account_payload(account: Account) -> dict:
    return {
        "id": account.id,
        "email": account.email,
        "phone_number": account.phone_number,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "role": account.role,
        "is_active": bool(account.is_active),
    }


def _tokens_payload(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "access_expires_at": pair.access_expires_at.isoformat(),
        "refresh_token": pair.refresh_token,
        "refresh_expires_at": pair.refresh_expires_at.isoformat(),
        "token_type": pair.token_type,
    }


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, container: ServiceContainer = Depends(get_container)):
    result = container.auth.register(
        email=payload.email,
        phone_number=payload.phone_number,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    body = {"success": True, "user": _account_payload(result.account)}
    if result.pending_activation:
        body["pending_activation"] = True
        body["message"] = "Check your email to activate your account"
        body["email_sent"] = result.email_sent
        if container.settings.app_env != "prod":
            body["dev_activation_path"] = f"/auth/activate/{result.activation_token}"
    else:
        body["pending_activation"] = False
        body.update(_tokens_payload(result.tokens))
    return body


@router.post("/login")
def login(payload: LoginRequest, request: Request, container: ServiceContainer = Depends(get_container)):
    result = container.auth.login(
        payload.identifier,
        payload.password,
        remember_me=payload.remember_me,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    return {"success": True, "user": _account_payload(result.account), **_tokens_payload(result.tokens)}


@router.post("/refresh")
def refresh(payload: RefreshRequest, container: ServiceContainer = Depends(get_container)):
    result = container.auth.refresh(payload.refresh_token)
    return {
        "success": True,
        "access_token": result.access_token,
        "access_expires_at": result.access_expires_at.isoformat(),
        "refresh_token": result.refresh_token,
        "refresh_expires_at": result.refresh_expires_at.isoformat() if result.refresh_expires_at else None,
        "token_type": "bearer",
    }


@router.post("/logout")
def logout(
    payload: Optional[LogoutRequest] = None,
    token: Optional[str] = Depends(bearer_token),
    container: ServiceContainer = Depends(get_container),
):
    container.auth.logout(token, payload.refresh_token if payload else None)
    return {"success": True, "message": "Logged out"}


@router.get("/activate/{token}")
def activate(token: str, container: ServiceContainer = Depends(get_container)):
    account = container.auth.activate(token)
    return {"success": True, "message": "Account activated", "user": _account_payload(account)}


@router.post("/resend-activation")
def resend_activation(payload: ResendActivationRequest, container: ServiceContainer = Depends(get_container)):
    container.auth.resend_activation(payload.identifier)
    # unknown identifiers get this same answer; active accounts get already_activated
    return {"success": True, "message": "If the account exists, a new activation email has been sent"}


@router.get("/me")
def me(claims: AccessClaims = Depends(current_claims), container: ServiceContainer = Depends(get_container)):
    account = container.accounts.get_account(claims.account_id)
    if not account:
        raise AccountNotFound()
    return {"success": True, "user": _account_payload(account)}


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    claims: AccessClaims = Depends(current_claims),
    container: ServiceContainer = Depends(get_container),
):
    container.auth.change_password(claims.account_id, payload.current_password, payload.new_password)
    return {"success": True, "message": "Password changed. Please sign in again"}


@router.put("/accounts/{account_id}/role")
def set_role(
    account_id: int,
    payload: RoleRequest,
    _admin: AccessClaims = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    account = container.auth.set_role(account_id, payload.role)
    return {"success": True, "user": _account_payload(account)}
