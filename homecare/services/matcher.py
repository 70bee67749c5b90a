"""
Provider matching for manual assignment.

Ranks the approved provider pool into three disjoint lists:
nearest by great-circle distance, same city, and everyone else.
"""

from typing import Any, Iterable, Optional

from sqlmodel import Session, select

from homecare.booking_models import (
    BookingDB,
    CandidateLists,
    ProviderCandidate,
    ProviderProfileDB,
    ProviderStatus,
)
from homecare.core.config import settings
from homecare.core.logging import logger
from homecare.services.errors import ValidationFailed
from homecare.utils.geo import calculate_distance, cities_match


def _to_candidate(provider: Any, distance_km: Optional[float] = None) -> ProviderCandidate:
    return ProviderCandidate(
        provider_id=str(provider.user_id),
        full_name=provider.full_name,
        phone=provider.phone,
        city=provider.city,
        role_type=provider.role_type,
        experience_years=provider.experience_years,
        available_now=bool(provider.available_now),
        distance_km=round(distance_km, 2) if distance_km is not None else None,
    )


def find_candidates(
    providers: Iterable[Any],
    city: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    limit: int = 10,
) -> CandidateLists:
    """
    Pure ranking over a provider snapshot.

    Only approved providers are considered. The nearest list needs booking
    coordinates and provider coordinates; the city lists additionally require a
    completed profile. A provider appears in at most one list.
    """
    if limit < 1:
        raise ValidationFailed("limit must be at least 1", code="invalid_limit")

    # De-duplicate by identity, first record wins
    pool: dict[str, Any] = {}
    for provider in providers:
        if provider.provider_status != ProviderStatus.APPROVED:
            continue
        pool.setdefault(str(provider.user_id), provider)

    nearest: list[ProviderCandidate] = []
    if lat is not None and lng is not None:
        located = [
            (calculate_distance(lat, lng, p.lat, p.lng), provider_id, p)
            for provider_id, p in pool.items()
            if p.lat is not None and p.lng is not None
        ]
        located.sort(key=lambda item: (item[0], item[1]))
        nearest = [_to_candidate(p, distance) for distance, _, p in located[:limit]]

    taken = {c.provider_id for c in nearest}
    same_city: list[ProviderCandidate] = []
    other_cities: list[ProviderCandidate] = []

    for provider_id, provider in pool.items():
        if provider_id in taken or not provider.profile_completed:
            continue
        if cities_match(provider.city, city):
            same_city.append(_to_candidate(provider))
        else:
            other_cities.append(_to_candidate(provider))

    return CandidateLists(nearest=nearest, same_city=same_city, other_cities=other_cities)


def load_provider_pool(session: Session) -> list[ProviderProfileDB]:
    """Approved providers from the directory."""
    statement = (
        select(ProviderProfileDB)
        .where(ProviderProfileDB.provider_status == ProviderStatus.APPROVED)
        .order_by(ProviderProfileDB.created_at)
    )
    return list(session.exec(statement).all())


def find_candidates_for_booking(
    session: Session, booking: BookingDB, limit: Optional[int] = None
) -> CandidateLists:
    """Run matching for a stored booking against the current directory."""
    providers = load_provider_pool(session)
    candidates = find_candidates(
        providers,
        city=booking.city,
        lat=booking.client_lat,
        lng=booking.client_lng,
        limit=limit or settings.NEAREST_PROVIDER_LIMIT,
    )

    logger.info(
        {
            "event_type": "provider_matching",
            "event_name": "candidates_ranked",
            "booking_id": str(booking.id),
            "booking_city": booking.city,
            "has_coordinates": booking.client_lat is not None and booking.client_lng is not None,
            "approved_pool": len(providers),
            "nearest": len(candidates.nearest),
            "same_city": len(candidates.same_city),
            "other_cities": len(candidates.other_cities),
        }
    )
    if candidates.is_empty:
        logger.warning(
            {
                "event_type": "provider_matching",
                "event_name": "no_candidates",
                "booking_id": str(booking.id),
            }
        )

    return candidates
