"""Distance-based delivery pricing with geocoding fallback."""

import asyncio
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from .distance import haversine_km
from .domain import Coordinate, DeliveryQuote
from .geo import GeoResolver, is_valid_postal_code

logger = structlog.get_logger(__name__)

# Postal codes this many units apart count as one kilometre when geocoding
# is unavailable.
FALLBACK_CODE_UNITS_PER_KM = 100


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _is_finite(coordinate: Optional[Coordinate]) -> bool:
    return coordinate is not None and math.isfinite(coordinate.latitude) and math.isfinite(coordinate.longitude)


class PricingPolicy:
    """
    Turns a seller/destination postal code pair into a DeliveryQuote.

    Layers, first match wins:
      1. malformed code      -> fixed default quote, unresolved
      2. identical codes     -> zero distance, resolved, no lookup
      3. both codes resolve  -> haversine distance x rate, resolved
      4. otherwise           -> estimate from the numeric code gap, unresolved

    The minimum charge is applied after rounding on every layer.
    """

    def __init__(
        self,
        resolver: GeoResolver,
        rate_per_km: int,
        timeout_seconds: float,
        min_charge: int = 0,
        default_charge: int = 100,
        default_distance_km: float = 10.0,
    ):
        self.resolver = resolver
        self.rate_per_km = rate_per_km
        self.timeout_seconds = timeout_seconds
        self.min_charge = max(min_charge, 0)
        self.default_charge = default_charge
        self.default_distance_km = default_distance_km

    def _charge_for(self, distance_km: float) -> int:
        return max(round_half_up(distance_km * self.rate_per_km), self.min_charge)

    async def _resolve(self, postal_code: str) -> Optional[Coordinate]:
        try:
            return await asyncio.wait_for(self.resolver.resolve(postal_code), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Postal code lookup timed out",
                postal_code=postal_code,
                timeout_seconds=self.timeout_seconds,
            )
            return None
        except Exception as e:
            logger.warning(
                "Postal code lookup failed, treating as unresolved",
                postal_code=postal_code,
                error=str(e),
                exc_info=True,
            )
            return None

    def fallback_estimate_km(self, seller_postal_code: str, destination_postal_code: str) -> float:
        gap = abs(int(seller_postal_code) - int(destination_postal_code))
        return gap / FALLBACK_CODE_UNITS_PER_KM

    async def quote(self, seller_postal_code: str, destination_postal_code: str) -> DeliveryQuote:
        if not (is_valid_postal_code(seller_postal_code) and is_valid_postal_code(destination_postal_code)):
            logger.warning(
                "Malformed postal code, using default delivery charge",
                seller_postal_code=seller_postal_code,
                destination_postal_code=destination_postal_code,
            )
            return DeliveryQuote(
                charge_amount=max(self.default_charge, self.min_charge),
                distance_km=self.default_distance_km,
                resolved=False,
            )

        if seller_postal_code == destination_postal_code:
            return DeliveryQuote(charge_amount=self._charge_for(0.0), distance_km=0.0, resolved=True)

        origin, destination = await asyncio.gather(
            self._resolve(seller_postal_code),
            self._resolve(destination_postal_code),
        )

        distance_km = None
        if _is_finite(origin) and _is_finite(destination):
            distance_km = haversine_km(origin, destination)

        if distance_km is None:
            estimated_km = self.fallback_estimate_km(seller_postal_code, destination_postal_code)
            charge = self._charge_for(estimated_km)
            logger.warning(
                "Geocoding unavailable, using fallback delivery estimate",
                seller_postal_code=seller_postal_code,
                destination_postal_code=destination_postal_code,
                estimated_km=estimated_km,
                charge=charge,
            )
            return DeliveryQuote(charge_amount=charge, distance_km=estimated_km, resolved=False)

        charge = self._charge_for(distance_km)
        logger.debug(
            "Delivery charge computed",
            seller_postal_code=seller_postal_code,
            destination_postal_code=destination_postal_code,
            distance_km=round(distance_km, 3),
            charge=charge,
        )
        return DeliveryQuote(charge_amount=charge, distance_km=distance_km, resolved=True)
