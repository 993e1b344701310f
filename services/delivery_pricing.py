"""Distance based delivery fees (TZS) and the rider/platform split."""
import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0
MAX_DELIVERY_DISTANCE_KM = 20

RIDER_PROFIT_PERCENTAGE = 0.75
PLATFORM_PROFIT_PERCENTAGE = 0.25


@dataclass(frozen=True)
class DeliveryPriceTier:
    min_km: float
    max_km: float
    price: int


DELIVERY_PRICE_TIERS = [
    DeliveryPriceTier(0, 0.5, 1000),
    DeliveryPriceTier(0.5, 2, 1000),
    DeliveryPriceTier(2, 4, 1500),
    DeliveryPriceTier(4, 6, 2000),
    DeliveryPriceTier(6, 8, 2500),
    DeliveryPriceTier(8, 10, 3000),
    DeliveryPriceTier(10, 15, 4000),
    DeliveryPriceTier(15, 20, 5000),
]

BASE_DELIVERY_FEE = DELIVERY_PRICE_TIERS[0].price


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def calculate_delivery_fee(distance_km: float) -> int:
    if distance_km <= 0:
        return BASE_DELIVERY_FEE
    if distance_km > MAX_DELIVERY_DISTANCE_KM:
        return DELIVERY_PRICE_TIERS[-1].price
    for tier in DELIVERY_PRICE_TIERS:
        if tier.min_km < distance_km <= tier.max_km:
            return tier.price
    return BASE_DELIVERY_FEE


def calculate_rider_share(delivery_fee: int) -> int:
    return round(delivery_fee * RIDER_PROFIT_PERCENTAGE)


def calculate_platform_share(delivery_fee: int) -> int:
    return round(delivery_fee * PLATFORM_PROFIT_PERCENTAGE)


def fee_between(
    origin_lat: Optional[float],
    origin_lon: Optional[float],
    dest_lat: Optional[float],
    dest_lon: Optional[float],
) -> int:
    """Delivery fee for a trip; the base fee when either end has no coordinates."""
    if None in (origin_lat, origin_lon, dest_lat, dest_lon):
        return BASE_DELIVERY_FEE
    return calculate_delivery_fee(calculate_distance(origin_lat, origin_lon, dest_lat, dest_lon))
