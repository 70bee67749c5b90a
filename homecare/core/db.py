from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from homecare import booking_models  # noqa: F401  registers tables on SQLModel.metadata
from homecare.booking_models import PlatformSettingsDB, ServiceDB
from homecare.core.config import settings


def _make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # in-memory databases must share one connection across sessions
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _make_engine(settings.SQLALCHEMY_DATABASE_URI)


def init_db(session: Session) -> None:
    # Tables should be created with migrations in production; create_all is
    # idempotent and keeps local and test databases self-contained.
    SQLModel.metadata.create_all(session.get_bind())

    seed_platform_settings(session)
    seed_services(session)


def seed_platform_settings(session: Session) -> None:
    if session.exec(select(PlatformSettingsDB)).first():
        return
    session.add(PlatformSettingsDB(id=1))
    session.commit()


def seed_services(session: Session) -> None:
    # Check if we already have data
    if session.exec(select(ServiceDB)).first():
        return

    services = [
        {"name": "زيارة طبيب منزلية", "name_en": "Home doctor visit", "category": "medical", "base_price": 50},
        {"name": "تمريض منزلي", "name_en": "Home nursing", "category": "nursing", "base_price": 50},
        {"name": "رعاية كبار السن", "name_en": "Elderly care", "category": "nursing", "base_price": 50},
        {"name": "علاج طبيعي", "name_en": "Physiotherapy session", "category": "medical", "base_price": 50},
        {"name": "تركيب محاليل وريدية", "name_en": "IV drip", "category": "nursing", "base_price": 50},
    ]

    for serv_data in services:
        session.add(ServiceDB(**serv_data))
    session.commit()


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
