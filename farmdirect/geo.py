"""Postal-code geolocation backends.

Every backend answers ``resolve(postal_code)`` with a Coordinate or ``None``.
Not-found codes, malformed codes and upstream failures all come back as
``None``; callers apply their own timeout on top.
"""

import math
import re
from abc import ABC, abstractmethod
from typing import Mapping, Optional

import httpx
import structlog

from .domain import Coordinate

logger = structlog.get_logger(__name__)

_POSTAL_CODE_RE = re.compile(r"[0-9]{6}")

# Chennai codes used by the seed data and local development.
CHENNAI_POSTAL_CODES: dict[str, Coordinate] = {
    "600001": Coordinate(13.0827, 80.2707),  # North Chennai
    "600017": Coordinate(13.0405, 80.2337),  # T. Nagar
    "600020": Coordinate(13.0067, 80.2570),  # Adyar
    "600096": Coordinate(12.9249, 80.2319),  # Perungudi
    "600119": Coordinate(12.8680, 80.2280),  # Sholinganallur
}


def is_valid_postal_code(postal_code: Optional[str]) -> bool:
    return bool(postal_code) and _POSTAL_CODE_RE.fullmatch(postal_code) is not None


class GeoResolver(ABC):
    """Base class that all postal-code resolvers must implement."""

    @abstractmethod
    async def resolve(self, postal_code: str) -> Optional[Coordinate]:
        """Resolve a 6-digit postal code.

        Args:
            postal_code: Postal code as entered by the user.

        Returns:
            The coordinate, or None when the code is malformed, unknown
            or the lookup failed.
        """

    async def aclose(self) -> None:
        """Release any held resources."""


class StaticGeoResolver(GeoResolver):
    """Lookup against a fixed in-memory table."""

    def __init__(self, table: Optional[Mapping[str, Coordinate]] = None):
        self.table = dict(CHENNAI_POSTAL_CODES if table is None else table)

    async def resolve(self, postal_code: str) -> Optional[Coordinate]:
        if not is_valid_postal_code(postal_code):
            return None
        return self.table.get(postal_code)


class IndiaPostGeoResolver(GeoResolver):
    """Client for the public India Post pincode API."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def resolve(self, postal_code: str) -> Optional[Coordinate]:
        if not is_valid_postal_code(postal_code):
            return None

        try:
            r = await self._client.get(f"{self.base_url}/{postal_code}")
            r.raise_for_status()
            payload = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Postal code lookup failed", postal_code=postal_code, error=str(e))
            return None

        return self._parse(postal_code, payload)

    def _parse(self, postal_code: str, payload) -> Optional[Coordinate]:
        # Response shape: [{"Status": "Success", "PostOffice": [{"Latitude": ..., ...}]}]
        if not isinstance(payload, list) or not payload:
            return None
        entry = payload[0]
        if not isinstance(entry, dict):
            return None
        offices = entry.get("PostOffice")
        if entry.get("Status") != "Success" or not isinstance(offices, list) or not offices:
            logger.info("Postal code not found", postal_code=postal_code)
            return None
        office = offices[0]
        if not isinstance(office, dict):
            return None

        try:
            lat, lng = float(office.get("Latitude")), float(office.get("Longitude"))
        except (TypeError, ValueError):
            lat = lng = math.nan
        # The API answers "NA" for offices without coordinates.
        if not (math.isfinite(lat) and math.isfinite(lng)):
            logger.info("Postal code has no coordinates", postal_code=postal_code)
            return None
        return Coordinate(latitude=lat, longitude=lng)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_resolver(backend: str, base_url: str, timeout_seconds: float) -> GeoResolver:
    """Instantiate the resolver named by ``backend``."""
    backend = backend.lower()

    if backend == "static":
        return StaticGeoResolver()

    if backend == "india_post":
        return IndiaPostGeoResolver(base_url=base_url, timeout_seconds=timeout_seconds)

    raise ValueError(f"Unsupported geocoder backend: {backend}")
