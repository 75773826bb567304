"""
Shared fixtures: a temporary SQLite database per test, a frozen clock and
recording collaborators in place of the mailer and notifier.
"""
from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# make the smokefree package importable when running the tests from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from smokefree.app_factory import build_container
from smokefree.core.clock import FrozenClock
from smokefree.core.config import Settings
from smokefree.domain.roles import Role

START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
PASSWORD = "correct-horse-9"


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, str, str]] = []

    def notify(self, account_id: int, title: str, message: str, type_: str = "system") -> None:
        self.sent.append((account_id, title, message, type_))

    def titles_for(self, account_id: int) -> list[str]:
        return [title for (aid, title, _m, _t) in self.sent if aid == account_id]


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    def __call__(self, subject, to_email, html_body, text_body=None, **_kwargs) -> bool:
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.sent.append({"subject": subject, "to": to_email, "html": html_body, "text": text_body})
        return True

    def last_token(self) -> str:
        text = self.sent[-1]["text"]
        return text.rsplit("/activate/", 1)[1].strip()


def make_settings(database_url: str, **overrides) -> Settings:
    values = dict(
        app_env="test",
        database_url=database_url,
        storage_timeout_seconds=5,
        public_base_url="http://localhost:3000",
        smtp_host="",
        smtp_port=465,
        smtp_user="",
        smtp_password="",
        smtp_from="",
        jwt_secret="test-signing-secret-with-enough-entropy",
        access_token_ttl_seconds=3600,
        access_token_remember_ttl_seconds=86400,
        refresh_token_ttl_days=7,
        refresh_token_remember_ttl_days=30,
        refresh_rotate_on_use=True,
        require_activation=True,
        activation_ttl_seconds=86400,
        login_lockout_threshold=5,
        login_lockout_window_seconds=1800,
        password_hash_time_cost=1,
        password_hash_memory_cost=1024,
        reconciler_enabled=False,
        reconciler_interval_seconds=86400,
        reconciler_startup_delay_seconds=0,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def clock():
    return FrozenClock(START)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def settings(tmp_path):
    return make_settings(f"sqlite:///{tmp_path / 'test.db'}")


@pytest.fixture()
def container(settings, clock, notifier, mailer):
    c = build_container(settings, clock=clock, notifier=notifier, send_email=mailer)
    c.db.create_all()
    yield c
    c.db.drop_all()
    c.db.dispose()


@pytest.fixture()
def plans(container):
    """Default plans keyed by duration in days."""
    container.catalog.seed_defaults()
    return {plan.duration_days: plan for plan in container.catalog.list_plans()}


@pytest.fixture()
def make_account(container):
    """Create an already-active account, optionally with a non-default role."""
    counter = {"n": 0}

    def _make(email: str | None = None, password: str = PASSWORD, role: Role = Role.GUEST):
        counter["n"] += 1
        result = container.auth.register(
            email=email or f"user{counter['n']}@example.com",
            password=password,
            first_name="Test",
            require_activation=False,
        )
        account = result.account
        if role is not Role.GUEST:
            account = container.auth.set_role(account.id, role)
        return account

    return _make
