from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from smokefree.app_factory import ServiceContainer
from smokefree.db.models import MembershipPlan
from smokefree.routers.deps import current_claims, get_container, require_admin
from smokefree.services.subscription_service import DEFAULT_PAYMENT_METHOD, LedgerEntry, MembershipView
from smokefree.services.token_service import AccessClaims

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


class SubscribeRequest(BaseModel):
    plan_id: int
    payment_method: str = DEFAULT_PAYMENT_METHOD


class RenewRequest(BaseModel):
    payment_method: str = DEFAULT_PAYMENT_METHOD


class PlanCreateRequest(BaseModel):
    name: str
    duration_days: int = Field(gt=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    description: str = ""
    features: List[str] = Field(default_factory=list)


class PlanUpdateRequest(BaseModel):
    name: Optional[str] = None
    duration_days: Optional[int] = Field(default=None, gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = None
    features: Optional[List[str]] = None


def _plan_payload(plan: MembershipPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price": float(plan.price),
        "duration_days": plan.duration_days,
        "features": list(plan.features or []),
    }


def _membership_payload(view: MembershipView) -> dict:
    return {
        "id": view.membership_id,
        "plan_id": view.plan_id,
        "plan_name": view.plan_name,
        "start_at": view.start_at.isoformat(),
        "end_at": view.end_at.isoformat(),
        "status": view.status,
        "days_remaining": view.days_remaining,
    }


def _ledger_payload(entry: LedgerEntry) -> dict:
    return {
        "success": True,
        "subscription": _membership_payload(entry.membership),
        "transaction_id": entry.transaction_id,
        "role": entry.role.value,
    }


@router.get("/plans")
def list_plans(container: ServiceContainer = Depends(get_container)):
    return {"success": True, "plans": [_plan_payload(p) for p in container.subscriptions.list_plans()]}


@router.get("/plans/{plan_id}")
def get_plan(plan_id: int, container: ServiceContainer = Depends(get_container)):
    return {"success": True, "plan": _plan_payload(container.subscriptions.get_plan(plan_id))}


@router.post("/plans", status_code=201)
def create_plan(
    payload: PlanCreateRequest,
    _admin: AccessClaims = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    plan = container.catalog.create_plan(
        payload.name, payload.duration_days, payload.price, payload.description, payload.features
    )
    return {"success": True, "plan": _plan_payload(plan)}


@router.patch("/plans/{plan_id}")
def update_plan(
    plan_id: int,
    payload: PlanUpdateRequest,
    _admin: AccessClaims = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    plan = container.catalog.update_plan(plan_id, **payload.model_dump(exclude_none=True))
    return {"success": True, "plan": _plan_payload(plan)}


@router.post("/subscribe", status_code=201)
def subscribe(
    payload: SubscribeRequest,
    claims: AccessClaims = Depends(current_claims),
    container: ServiceContainer = Depends(get_container),
):
    entry = container.subscriptions.subscribe(claims.account_id, payload.plan_id, payload.payment_method)
    return _ledger_payload(entry)


@router.post("/renew")
def renew(
    payload: Optional[RenewRequest] = None,
    claims: AccessClaims = Depends(current_claims),
    container: ServiceContainer = Depends(get_container),
):
    method = payload.payment_method if payload else DEFAULT_PAYMENT_METHOD
    return _ledger_payload(container.subscriptions.renew(claims.account_id, method))


@router.post("/cancel")
def cancel(claims: AccessClaims = Depends(current_claims), container: ServiceContainer = Depends(get_container)):
    view = container.subscriptions.cancel(claims.account_id)
    return {
        "success": True,
        "message": "Subscription cancelled. Access continues until the end of the current period",
        "subscription": _membership_payload(view),
    }


@router.get("/active")
def active(claims: AccessClaims = Depends(current_claims), container: ServiceContainer = Depends(get_container)):
    view = container.subscriptions.active_subscription(claims.account_id)
    return {"success": True, "subscription": _membership_payload(view) if view else None}


@router.get("/member-status")
def member_status(claims: AccessClaims = Depends(current_claims), container: ServiceContainer = Depends(get_container)):
    status = container.subscriptions.member_status(claims.account_id)
    return {
        "success": True,
        "role": status.role.value,
        "is_member": status.is_member,
        "has_active_subscription": status.has_active_subscription,
        "subscription": _membership_payload(status.subscription) if status.subscription else None,
    }


@router.post("/check-expiration")
async def check_expiration(
    _admin: AccessClaims = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    report = await container.worker.run_once()
    return {
        "success": True,
        "expired": len(report.expired_memberships),
        "demoted": len(report.demoted_accounts),
        "failed": len(report.failed_accounts),
    }
