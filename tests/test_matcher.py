"""
Tests for provider matching.

Tests cover:
- Nearest list ordering and limit
- Same-city and other-city fallbacks
- Disjointness of the three lists
- City name normalization and aliases
"""
from homecare.booking_models import ProviderProfileDB, ProviderStatus
from homecare.services.matcher import find_candidates, find_candidates_for_booking
from homecare.utils.geo import calculate_distance, cities_match, city_group

AMMAN = (31.9539, 35.9106)
ZARQA = (32.0728, 36.0880)
IRBID = (32.5556, 35.8500)


def provider(user_id: str, city: str = "Amman", lat=None, lng=None, **kwargs) -> ProviderProfileDB:
    data = {
        "user_id": user_id,
        "full_name": user_id,
        "city": city,
        "lat": lat,
        "lng": lng,
        "provider_status": ProviderStatus.APPROVED,
        "profile_completed": True,
        "available_now": False,
    }
    data.update(kwargs)
    return ProviderProfileDB(**data)


class TestNearestList:
    """Tests for distance ranking."""

    def test_sorted_by_distance(self) -> None:
        providers = [
            provider("irbid", "Irbid", *IRBID),
            provider("amman", "Amman", *AMMAN),
            provider("zarqa", "Zarqa", *ZARQA),
        ]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        assert [c.provider_id for c in result.nearest] == ["amman", "zarqa", "irbid"]
        distances = [c.distance_km for c in result.nearest]
        assert distances == sorted(distances)
        assert distances[0] == 0

    def test_respects_limit(self) -> None:
        providers = [
            provider("irbid", "Irbid", *IRBID),
            provider("amman", "Amman", *AMMAN),
            provider("zarqa", "Zarqa", *ZARQA),
        ]
        result = find_candidates(providers, "Amman", *AMMAN, limit=2)

        assert [c.provider_id for c in result.nearest] == ["amman", "zarqa"]
        # The provider beyond the limit falls through to the city lists
        assert [c.provider_id for c in result.other_cities] == ["irbid"]

    def test_no_booking_coordinates_skips_nearest(self) -> None:
        providers = [
            provider("amman", "Amman", *AMMAN),
            provider("irbid", "Irbid", *IRBID),
        ]
        result = find_candidates(providers, "Amman", None, None, limit=10)

        assert result.nearest == []
        assert [c.provider_id for c in result.same_city] == ["amman"]
        assert [c.provider_id for c in result.other_cities] == ["irbid"]

    def test_providers_without_coordinates_not_in_nearest(self) -> None:
        providers = [provider("nocoords", "Amman"), provider("amman", "Amman", *AMMAN)]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        assert [c.provider_id for c in result.nearest] == ["amman"]
        assert [c.provider_id for c in result.same_city] == ["nocoords"]

    def test_available_now_is_reported(self) -> None:
        providers = [provider("amman", "Amman", *AMMAN, available_now=True)]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        assert result.nearest[0].available_now is True


class TestFallbackLists:
    """Tests for city fallbacks and pool filtering."""

    def test_lists_are_disjoint(self) -> None:
        providers = [
            provider("a", "Amman", *AMMAN),
            provider("b", "عمان"),
            provider("c", "Irbid"),
            provider("a", "Amman", *AMMAN),
        ]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        ids = result.provider_ids()
        assert len(ids) == len(set(ids))
        assert set(ids) == {"a", "b", "c"}

    def test_arabic_city_lands_in_same_city(self) -> None:
        providers = [provider("ar", "عمّان"), provider("irbid", "Irbid")]
        result = find_candidates(providers, "amman", None, None, limit=10)

        assert [c.provider_id for c in result.same_city] == ["ar"]
        assert "ar" not in [c.provider_id for c in result.other_cities]
        assert [c.provider_id for c in result.other_cities] == ["irbid"]

    def test_unapproved_providers_excluded(self) -> None:
        providers = [
            provider("pending", "Amman", *AMMAN, provider_status=ProviderStatus.PENDING),
            provider("suspended", "Amman", provider_status=ProviderStatus.SUSPENDED),
        ]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        assert result.is_empty

    def test_incomplete_profiles_only_in_nearest(self) -> None:
        providers = [
            provider("near", "Amman", *AMMAN, profile_completed=False),
            provider("far", "Amman", profile_completed=False),
        ]
        result = find_candidates(providers, "Amman", *AMMAN, limit=10)

        assert [c.provider_id for c in result.nearest] == ["near"]
        assert result.same_city == []
        assert result.other_cities == []

    def test_empty_pool(self) -> None:
        result = find_candidates([], "Amman", *AMMAN, limit=10)

        assert result.is_empty
        assert result.provider_ids() == []


class TestCityMatching:
    """Tests for normalized city comparison."""

    def test_alias_across_languages(self) -> None:
        assert cities_match("عمان", "Amman")
        assert cities_match("إربد", "irbid")

    def test_diacritics_and_case(self) -> None:
        assert cities_match("عَمّان", "عمان")
        assert cities_match("  AMMAN ", "amman")

    def test_substring_containment(self) -> None:
        assert cities_match("Amman - Khalda", "Amman")
        assert cities_match("Zarqa", "New Zarqa")

    def test_different_regions(self) -> None:
        assert not cities_match("Amman", "Irbid")
        assert not cities_match("", "Amman")
        assert not cities_match(None, "Amman")

    def test_city_group_tokens(self) -> None:
        assert city_group("Khalda, Amman") == "amman"
        assert city_group("Unknown town") is None

    def test_distance_is_symmetric(self) -> None:
        d1 = calculate_distance(*AMMAN, *IRBID)
        d2 = calculate_distance(*IRBID, *AMMAN)
        assert abs(d1 - d2) < 1e-9
        assert 60 < d1 < 80


class TestMatchingForBooking:
    """Tests for matching against the stored directory."""

    def test_uses_booking_location(self, session, make_booking, make_provider) -> None:
        booking = make_booking()
        make_provider("p-near", lat=AMMAN[0], lng=AMMAN[1])
        make_provider("p-irbid", city="Irbid")
        make_provider("p-pending", provider_status=ProviderStatus.PENDING)

        result = find_candidates_for_booking(session, booking, limit=5)

        assert [c.provider_id for c in result.nearest] == ["p-near"]
        assert [c.provider_id for c in result.other_cities] == ["p-irbid"]
        assert "p-pending" not in result.provider_ids()
