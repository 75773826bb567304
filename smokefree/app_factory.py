"""Wires storage, repositories and services into one container per app."""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Optional

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.config import Settings, get_settings
from smokefree.core.mailer import send_email as smtp_send_email
from smokefree.core.security import SecretHasher
from smokefree.db.session import Database
from smokefree.repositories import AccountRepository, LoginAttemptRepository, MembershipRepository
from smokefree.services.activation_service import ActivationService, SendEmail
from smokefree.services.auth_service import AuthService
from smokefree.services.expiration_reconciler import ExpirationReconciler, ReconcilerWorker
from smokefree.services.login_guard import LoginGuard
from smokefree.services.notifier import DatabaseNotifier, Notifier
from smokefree.services.payment_gateway import MockPaymentGateway, PaymentGateway
from smokefree.services.plan_catalog import PlanCatalog
from smokefree.services.subscription_service import SubscriptionService
from smokefree.services.token_service import TokenService


@dataclass
class ServiceContainer:
    settings: Settings
    db: Database
    clock: Clock
    accounts: AccountRepository
    memberships: MembershipRepository
    notifier: Notifier
    tokens: TokenService
    activation: ActivationService
    auth: AuthService
    catalog: PlanCatalog
    subscriptions: SubscriptionService
    reconciler: ExpirationReconciler
    worker: ReconcilerWorker


def build_container(
    settings: Optional[Settings] = None,
    *,
    db: Optional[Database] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
    payments: Optional[PaymentGateway] = None,
    send_email: Optional[SendEmail] = None,
) -> ServiceContainer:
    """Build every collaborator from ``settings``; any of them can be swapped in tests."""
    settings = settings or get_settings()
    clock = clock or SystemClock()
    db = db or Database(settings.database_url, timeout_seconds=settings.storage_timeout_seconds)

    accounts = AccountRepository(db)
    attempts = LoginAttemptRepository(db)
    memberships = MembershipRepository(db)
    notifier = notifier or DatabaseNotifier(memberships, clock)
    hasher = SecretHasher(settings.password_hash_time_cost, settings.password_hash_memory_cost)

    guard = LoginGuard(
        attempts,
        threshold=settings.login_lockout_threshold,
        window_seconds=settings.login_lockout_window_seconds,
        clock=clock,
    )
    tokens = TokenService(accounts, settings, clock)
    activation = ActivationService(
        accounts,
        settings,
        notifier=notifier,
        send_email=send_email or partial(smtp_send_email, settings=settings),
        clock=clock,
    )
    auth = AuthService(
        db=db,
        accounts=accounts,
        guard=guard,
        tokens=tokens,
        activation=activation,
        settings=settings,
        hasher=hasher,
        clock=clock,
    )
    catalog = PlanCatalog(memberships)
    subscriptions = SubscriptionService(
        db,
        accounts,
        memberships,
        catalog,
        payments or MockPaymentGateway(clock),
        notifier,
        clock,
    )
    reconciler = ExpirationReconciler(db, accounts, memberships, notifier, clock)
    worker = ReconcilerWorker(
        reconciler,
        interval_seconds=settings.reconciler_interval_seconds,
        startup_delay_seconds=settings.reconciler_startup_delay_seconds,
    )
    return ServiceContainer(
        settings=settings,
        db=db,
        clock=clock,
        accounts=accounts,
        memberships=memberships,
        notifier=notifier,
        tokens=tokens,
        activation=activation,
        auth=auth,
        catalog=catalog,
        subscriptions=subscriptions,
        reconciler=reconciler,
        worker=worker,
    )
