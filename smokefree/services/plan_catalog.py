"""Cached access to membership plans (read-mostly reference data)."""
from __future__ import annotations

import threading
from decimal import Decimal
from typing import Dict, Optional

from smokefree.core.errors import PlanNotFound, ValidationError
from smokefree.core.logging import get_logger
from smokefree.db.models import MembershipPlan
from smokefree.repositories.membership_repository import MembershipRepository

logger = get_logger(__name__)

DEFAULT_PLANS = [
    {
        "name": "Guest (free)",
        "description": "Free tier for registered guests",
        "price": 0,
        "duration_days": 36500,
        "features": ["Account registration", "Blog and leaderboard", "Smoking status log"],
    },
    {
        "name": "30-day plan",
        "description": "Basic 30 day plan",
        "price": 99000,
        "duration_days": 30,
        "features": ["Quit plan", "Daily journal", "Badges and notifications", "1 coach message"],
    },
    {
        "name": "3-month plan",
        "description": "90 day plan",
        "price": 170000,
        "duration_days": 90,
        "features": ["Everything in the 30-day plan", "2 priority coach sessions", "Advanced statistics"],
    },
    {
        "name": "6-month plan",
        "description": "180 day plan",
        "price": 320000,
        "duration_days": 180,
        "features": ["Monthly coach call", "Personalised motivation", "Milestone rewards"],
    },
    {
        "name": "1-year plan",
        "description": "365 day plan",
        "price": 550000,
        "duration_days": 365,
        "features": ["All features", "Weekly coach session", "Staged plan suggestions", "24/7 support"],
    },
]


class PlanCatalog:
    """Plans keyed by id, loaded lazily and dropped on every admin edit."""

    def __init__(self, repository: MembershipRepository) -> None:
        self.repository = repository
        self._plans: Optional[Dict[int, MembershipPlan]] = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[int, MembershipPlan]:
        with self._lock:
            if self._plans is None:
                self._plans = {plan.id: plan for plan in self.repository.list_plans()}
            return self._plans

    def invalidate(self) -> None:
        with self._lock:
            self._plans = None

    def list_plans(self) -> list[MembershipPlan]:
        return sorted(self._load().values(), key=lambda p: (Decimal(p.price), p.id))

    def get(self, plan_id: int) -> MembershipPlan:
        plan = self._load().get(plan_id)
        if plan is None:
            raise PlanNotFound()
        return plan

    # -------------------------- admin edits --------------------------
    def create_plan(
        self,
        name: str,
        duration_days: int,
        price: Decimal | int | float = 0,
        description: str = "",
        features: Optional[list[str]] = None,
    ) -> MembershipPlan:
        if not (name or "").strip():
            raise ValidationError("Plan name is required")
        if int(duration_days) <= 0:
            raise ValidationError("Plan duration must be positive")
        if Decimal(str(price)) < 0:
            raise ValidationError("Plan price must not be negative")
        plan = self.repository.create_plan(name.strip(), duration_days, price, description, features)
        self.invalidate()
        logger.info("plan_created", plan_id=plan.id, name=plan.name)
        return plan

    def update_plan(self, plan_id: int, **fields) -> MembershipPlan:
        if fields.get("duration_days") is not None and int(fields["duration_days"]) <= 0:
            raise ValidationError("Plan duration must be positive")
        plan = self.repository.update_plan(plan_id, **fields)
        self.invalidate()
        if plan is None:
            raise PlanNotFound()
        logger.info("plan_updated", plan_id=plan_id)
        return plan

    def seed_defaults(self) -> int:
        """Insert the default plans when the table is empty; returns how many were added."""
        if self.repository.list_plans():
            return 0
        for plan_fields in DEFAULT_PLANS:
            self.repository.create_plan(**plan_fields)
        self.invalidate()
        return len(DEFAULT_PLANS)
