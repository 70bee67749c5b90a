import os

# Must be set before homecare.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"

from collections.abc import Callable, Generator
from datetime import timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, select

from homecare.booking_models import (
    Actor,
    ActorRole,
    BookingCreate,
    BookingDB,
    ProviderProfileDB,
    ProviderStatus,
    RoleType,
    ServiceDB,
)
from homecare.core.db import engine, init_db
from homecare.main import app
from homecare.services.intake import create_booking
from homecare.services.policy import PlatformPolicy
from homecare.utils.timeutils import utcnow

AMMAN = (31.9539, 35.9106)


@pytest.fixture(autouse=True)
def db() -> Generator[None, None, None]:
    SQLModel.metadata.drop_all(engine)
    with Session(engine) as session:
        init_db(session)
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def policy() -> PlatformPolicy:
    return PlatformPolicy()


@pytest.fixture
def staff() -> Actor:
    return Actor(id="staff-1", role=ActorRole.CS)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def service(session: Session) -> ServiceDB:
    return session.exec(select(ServiceDB).order_by(ServiceDB.name)).first()


@pytest.fixture
def make_provider(session: Session) -> Callable[..., ProviderProfileDB]:
    def _make(user_id: str, **overrides: Any) -> ProviderProfileDB:
        data: dict[str, Any] = {
            "user_id": user_id,
            "full_name": f"Provider {user_id}",
            "phone": "0790000000",
            "city": "Amman",
            "role_type": RoleType.NURSE,
            "provider_status": ProviderStatus.APPROVED,
            "profile_completed": True,
            "available_now": True,
            "lat": None,
            "lng": None,
        }
        data.update(overrides)
        provider = ProviderProfileDB(**data)
        session.add(provider)
        session.commit()
        session.refresh(provider)
        return provider

    return _make


@pytest.fixture
def make_booking(
    session: Session, service: ServiceDB, policy: PlatformPolicy
) -> Callable[..., BookingDB]:
    def _make(**overrides: Any) -> BookingDB:
        data: dict[str, Any] = {
            "customer_name": "Lina Haddad",
            "customer_phone": "0791234567",
            "city": "Amman",
            "service_id": service.id,
            "scheduled_at": utcnow() + timedelta(days=1),
            "client_address_text": "Khalda, street 12",
            "client_lat": AMMAN[0],
            "client_lng": AMMAN[1],
            "hours": 2,
        }
        data.update(overrides)
        return create_booking(session, BookingCreate(**data), policy)

    return _make


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return {"X-Actor-Id": "staff-1", "X-Actor-Role": "cs"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}


@pytest.fixture
def provider_headers() -> Callable[[str], dict[str, str]]:
    def _headers(provider_id: str) -> dict[str, str]:
        return {"X-Actor-Id": provider_id, "X-Actor-Role": "provider"}

    return _headers
