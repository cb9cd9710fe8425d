"""
Pytest configuration and fixtures.
Provides an in-memory database per test, in-test fakes for the external
registries, notifier and clock, and an API client bound to them.
"""

import os

os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import uuid4

import pytest
from dependency_injector import providers
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import ledgercrm.models  # noqa: F401
from ledgercrm.core.cache import InMemoryCache
from ledgercrm.core.exceptions import RegistryUnavailableError
from ledgercrm.core.integrations.vies_client import ViesResponse
from ledgercrm.core.integrations.whitelist_client import WhitelistLookup, WhitelistSubject
from ledgercrm.core.rate_limiter import FixedWindowRateLimiter
from ledgercrm.db.base import Base
from ledgercrm.models.audit_log import AuditLog
from ledgercrm.models.client import Client
from ledgercrm.models.timeline_event import TimelineEvent
from ledgercrm.schemas.common import Actor


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

VALID_NIP = "5252248481"
OTHER_VALID_NIP = "1234563218"
BAD_CHECKSUM_NIP = "5252248482"


class FakeClock:
    """
    Settable clock returning naive UTC datetimes; also usable as a float clock.

    Each datetime read ticks one microsecond so rows written by consecutive
    calls keep their insertion order.
    """

    def __init__(self, start: datetime = datetime(2026, 3, 10, 10, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(microseconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def timestamp(self) -> float:
        return self.now.timestamp()


class FakeSleep:
    """Records requested pauses and moves the clock forward instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds=seconds)


class FakeVatRegistry:
    """VIES stand-in: numbers listed in `valid` are valid, anything else invalid."""

    def __init__(self):
        self.valid: Dict[str, str] = {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None

    async def check_vat(self, country_code: str, local_number: str) -> ViesResponse:
        full = f"{country_code}{local_number}"
        self.calls.append(full)
        if self.error is not None:
            raise self.error
        name = self.valid.get(full)
        return ViesResponse(
            valid=name is not None,
            country_code=country_code,
            vat_number=local_number,
            name=name,
            address="ul. Testowa 1, Warszawa" if name else None,
            request_identifier=f"WAPI{len(self.calls):06d}",
            raw={"valid": str(name is not None).lower()},
        )


class FakeWhitelistRegistry:
    """Whitelist stand-in keyed by NIP; unknown NIPs have no subject."""

    def __init__(self):
        self.subjects: Dict[str, WhitelistSubject] = {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def register(self, nip: str, status_vat: str = "Czynny", accounts: Optional[List[str]] = None, name: str = "ACME SP. Z O.O."):
        self.subjects[nip] = WhitelistSubject(
            name=name, nip=nip, status_vat=status_vat, account_numbers=accounts or []
        )

    async def search_nip(self, nip: str, as_of: date) -> WhitelistLookup:
        self.calls.append((nip, as_of))
        if self.error is not None:
            raise self.error
        return WhitelistLookup(
            subject=self.subjects.get(nip),
            request_id=f"req-{len(self.calls)}",
            raw={"result": {"requestId": f"req-{len(self.calls)}"}},
        )


class RecordingNotifier:
    """Portal notifier capturing dispatches; can be told to fail."""

    def __init__(self):
        self.invitations: List[dict] = []
        self.revocations: List[dict] = []
        self.fail = False

    async def send_invitation(self, contact_id, email, full_name, portal_account_id, permissions) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.invitations.append(
            {"contact_id": contact_id, "email": email, "portal_account_id": portal_account_id, "permissions": permissions}
        )

    async def send_revocation(self, contact_id, email, full_name, reason) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.revocations.append({"contact_id": contact_id, "email": email, "reason": reason})


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def cache(clock) -> InMemoryCache:
    return InMemoryCache(clock=clock.timestamp)


@pytest.fixture
def rate_limiter(cache, clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(cache, limit=10, window_seconds=60, key_prefix="ratelimit:vies", clock=clock.timestamp)


@pytest.fixture
def vat_registry() -> FakeVatRegistry:
    return FakeVatRegistry()


@pytest.fixture
def whitelist_registry() -> FakeWhitelistRegistry:
    return FakeWhitelistRegistry()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=uuid4(), organization_id=uuid4())


@pytest.fixture
def other_actor() -> Actor:
    return Actor(user_id=uuid4(), organization_id=uuid4())


@pytest.fixture
async def client(session, actor) -> Client:
    record = Client(organization_id=actor.organization_id, name="Acme Sp. z o.o.", nip=VALID_NIP)
    session.add(record)
    await session.commit()
    return record


async def timeline_events(session, client_id, event_type=None) -> List[TimelineEvent]:
    query = select(TimelineEvent).where(TimelineEvent.client_id == client_id)
    if event_type is not None:
        query = query.where(TimelineEvent.event_type == event_type)
    result = await session.execute(query.order_by(TimelineEvent.created_at, TimelineEvent.id))
    return list(result.scalars().all())


async def audit_entries(session, action=None) -> List[AuditLog]:
    query = select(AuditLog)
    if action is not None:
        query = query.where(AuditLog.action == action)
    result = await session.execute(query.order_by(AuditLog.created_at))
    return list(result.scalars().all())


def raise_unavailable(registry: str = "vies") -> RegistryUnavailableError:
    return RegistryUnavailableError(registry, "connection refused")


@pytest.fixture
async def api_client(session_maker, clock, fake_sleep, cache, rate_limiter, vat_registry, whitelist_registry, notifier, tmp_path):
    """
    HTTP client against the app with the database and external collaborators
    replaced by the fixtures above.
    """
    from ledgercrm.db.session import get_db
    from ledgercrm.deps import di_container
    from ledgercrm.main import create_app
    from ledgercrm.services.contact_service import ClientLockRegistry
    from ledgercrm.services.timeline_export_service import ExportStore

    container = di_container.Container()
    container.config.from_dict(di_container.settings_config())
    container.cache.override(providers.Object(cache))
    container.vat_rate_limiter.override(providers.Object(rate_limiter))
    container.vat_registry.override(providers.Object(vat_registry))
    container.whitelist_registry.override(providers.Object(whitelist_registry))
    container.portal_notifier.override(providers.Object(notifier))
    container.export_store.override(providers.Object(ExportStore(str(tmp_path), ttl_seconds=3600, clock=clock)))
    container.client_locks.override(providers.Object(ClientLockRegistry()))
    container.clock.override(providers.Object(clock))
    container.sleep.override(providers.Object(fake_sleep))
    previous = di_container._container
    di_container.set_container(container)

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.state.limiter.enabled = False
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

    di_container.set_container(previous)


def actor_headers(actor: Actor) -> dict:
    return {"X-User-Id": str(actor.user_id), "X-Organization-Id": str(actor.organization_id)}
