import pytest

from services.delivery_pricing import (
    BASE_DELIVERY_FEE,
    calculate_delivery_fee,
    calculate_distance,
    calculate_platform_share,
    calculate_rider_share,
    fee_between,
)


class TestDeliveryPricing:
    @pytest.mark.parametrize(
        "distance,fee",
        [
            (0, 1000),
            (0.3, 1000),
            (0.5, 1000),
            (1.9, 1000),
            (2.0, 1000),
            (3.5, 1500),
            (5, 2000),
            (7.2, 2500),
            (10, 3000),
            (12, 4000),
            (20, 5000),
            (35, 5000),
        ],
    )
    def test_tiers(self, distance, fee):
        assert calculate_delivery_fee(distance) == fee

    def test_haversine(self):
        # Kariakoo to Sinza, Dar es Salaam
        distance = calculate_distance(-6.8190, 39.2800, -6.7924, 39.2083)
        assert 8 < distance < 9
        assert calculate_distance(-6.8, 39.2, -6.8, 39.2) == 0

    def test_shares(self):
        assert calculate_rider_share(2000) == 1500
        assert calculate_platform_share(2000) == 500
        assert calculate_rider_share(1500) + calculate_platform_share(1500) == 1500

    def test_fee_between_unknown_coordinates(self):
        assert fee_between(None, 39.28, -6.79, 39.20) == BASE_DELIVERY_FEE
        assert fee_between(-6.8190, 39.2800, None, None) == BASE_DELIVERY_FEE

    def test_fee_between(self):
        assert fee_between(-6.8190, 39.2800, -6.7924, 39.2083) == 3000
