import logging

import httpx

from homecare.core.config import settings

logger = logging.getLogger(__name__)


async def get_coordinates(
    address: str, transport: httpx.AsyncBaseTransport | None = None
) -> tuple[float | None, float | None]:
    """
    Get latitude and longitude for an address using OpenStreetMap (Nominatim).
    Returns (latitude, longitude) or (None, None) if not found.
    """
    if not address:
        return None, None

    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            # Nominatim usage policy requires a valid User-Agent
            headers = {"User-Agent": settings.GEOCODER_USER_AGENT}

            response = await client.get(
                settings.GEOCODER_URL,
                params={
                    "q": address,
                    "format": "json",
                    "limit": 1,
                    "countrycodes": settings.GEOCODER_COUNTRY_CODES,
                },
                headers=headers,
            )

            response.raise_for_status()
            data = response.json()

            if data and len(data) > 0:
                lat = float(data[0]["lat"])
                lon = float(data[0]["lon"])
                logger.info(f"Geocoded '{address}' to ({lat}, {lon})")
                return lat, lon

    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.error(f"Geocoding error for address '{address}': {str(e)}")

    return None, None
