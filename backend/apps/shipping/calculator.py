# apps/shipping/calculator.py

"""
Shipping cost and delivery estimate calculation.

All functions are pure: the same destination, weight, subtotal and tier always
produce the same quote. Costs are computed in USD and converted to KES for
display with a static exchange rate.
"""

import math
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from .zones import (
    TIER_COURIERS, TIER_FACTORS, ServiceTier, ShippingZone, get_zone,
    get_zone_rate, normalize_country_code, shipping_setting
)

CENTS = Decimal('0.01')
BASE_CURRENCY = 'USD'
DISPLAY_CURRENCY = 'KES'


@dataclass(frozen=True)
class ShippingQuote:
    """Result of a shipping calculation"""
    country_code: str
    zone: str
    zone_name: str
    tier: str
    weight_kg: Decimal
    base_rate: Decimal
    weight_charge: Decimal
    cost_usd: Decimal
    cost_kes: Decimal
    currency: str
    display_currency: str
    estimated_days_min: int
    estimated_days_max: int
    courier: str
    is_free_shipping: bool
    savings: Decimal
    free_shipping_threshold: Decimal

    @property
    def estimated_days(self) -> str:
        return f"{self.estimated_days_min}-{self.estimated_days_max} days"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = float(value)
        data['estimated_days'] = self.estimated_days
        return data


def to_decimal(value, default: Decimal = Decimal('0')) -> Decimal:
    """Coerce numbers and numeric strings to Decimal; blanks become the default"""
    if value is None or value == '':
        return default
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid numeric value: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result


def calculate_total_weight(items: Iterable, default_weight=None) -> Decimal:
    """
    Sum item weights times quantities.

    Items may be dicts or objects exposing ``weight``/``weight_kg`` and
    ``quantity``; items without weight metadata use the default item weight.
    """
    if default_weight is None:
        default_weight = shipping_setting('DEFAULT_ITEM_WEIGHT_KG')
    default_weight = to_decimal(default_weight)

    total = Decimal('0')
    for item in items:
        if isinstance(item, dict):
            weight = item.get('weight', item.get('weight_kg'))
            quantity = item.get('quantity', 1)
        else:
            weight = getattr(item, 'weight_kg', getattr(item, 'weight', None))
            quantity = getattr(item, 'quantity', 1)
        item_weight = to_decimal(weight, default_weight)
        if item_weight <= 0:
            item_weight = default_weight
        total += item_weight * int(quantity or 1)
    return total


def volumetric_weight(length, width, height) -> Decimal:
    """Volumetric weight in kg for dimensions in cm"""
    volume = to_decimal(length) * to_decimal(width) * to_decimal(height)
    return volume / shipping_setting('VOLUMETRIC_DIVISOR')


def billable_weight(actual_weight, dimensions: Optional[Dict] = None) -> Decimal:
    """The greater of actual and volumetric weight"""
    actual = to_decimal(actual_weight)
    if not dimensions:
        return actual
    volumetric = volumetric_weight(
        dimensions.get('length', 0), dimensions.get('width', 0), dimensions.get('height', 0)
    )
    return max(actual, volumetric)


def _tier_days(days_min: int, days_max: int, factor: Decimal):
    if factor == 1:
        return days_min, days_max
    scaled_min = max(1, math.ceil(days_min * factor))
    scaled_max = max(scaled_min, math.ceil(days_max * factor))
    return scaled_min, scaled_max


def is_free_shipping(subtotal, zone) -> bool:
    return to_decimal(subtotal) >= get_zone_rate(zone).free_shipping_threshold


def amount_needed_for_free_shipping(subtotal, zone) -> Decimal:
    threshold = get_zone_rate(zone).free_shipping_threshold
    return max(Decimal('0'), threshold - to_decimal(subtotal)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_shipping(country_code, weight=None, subtotal=None, tier=ServiceTier.STANDARD) -> ShippingQuote:
    """
    Quote shipping to a destination.

    ``cost = max(base, base + per_kg * max(0, weight - included))`` scaled by
    the tier factor. When the subtotal reaches the zone's free-shipping
    threshold the cost is zero but the delivery range is unchanged.
    """
    code = normalize_country_code(country_code)
    zone = get_zone(code)
    rate = get_zone_rate(zone)
    tier = ServiceTier(str(tier).upper()) if tier else ServiceTier.STANDARD
    cost_factor, days_factor = TIER_FACTORS[tier]

    minimum_weight = shipping_setting('MIN_BILLABLE_WEIGHT_KG')
    weight_kg = to_decimal(weight, minimum_weight)
    if weight_kg < minimum_weight:
        weight_kg = minimum_weight
    subtotal = to_decimal(subtotal)

    additional_weight = max(Decimal('0'), weight_kg - shipping_setting('INCLUDED_WEIGHT_KG'))
    weight_charge = rate.per_kg_rate * additional_weight
    full_cost = max(rate.base_rate, rate.base_rate + weight_charge) * cost_factor
    full_cost = full_cost.quantize(CENTS, rounding=ROUND_HALF_UP)

    free = subtotal >= rate.free_shipping_threshold
    cost_usd = Decimal('0.00') if free else full_cost
    cost_kes = (cost_usd * shipping_setting('USD_TO_KES')).quantize(Decimal('1'), rounding=ROUND_HALF_UP)

    days_min, days_max = _tier_days(rate.estimated_days_min, rate.estimated_days_max, days_factor)

    return ShippingQuote(
        country_code=code,
        zone=ShippingZone(zone).value,
        zone_name=ShippingZone(zone).label,
        tier=tier.value,
        weight_kg=weight_kg,
        base_rate=rate.base_rate,
        weight_charge=weight_charge.quantize(CENTS, rounding=ROUND_HALF_UP),
        cost_usd=cost_usd,
        cost_kes=cost_kes,
        currency=BASE_CURRENCY,
        display_currency=DISPLAY_CURRENCY,
        estimated_days_min=days_min,
        estimated_days_max=days_max,
        courier=TIER_COURIERS.get(tier, rate.courier),
        is_free_shipping=free,
        savings=full_cost if free else Decimal('0.00'),
        free_shipping_threshold=rate.free_shipping_threshold,
    )


def available_tiers(zone) -> List[str]:
    """Economy and express are offered only outside the domestic zone"""
    if zone == ShippingZone.DOMESTIC:
        return [ServiceTier.STANDARD]
    return [ServiceTier.ECONOMY, ServiceTier.STANDARD, ServiceTier.EXPRESS]


def shipping_options(country_code, weight=None, subtotal=None) -> List[ShippingQuote]:
    """Quotes for every tier offered to the destination, cheapest first"""
    zone = get_zone(country_code)
    return [
        calculate_shipping(country_code, weight=weight, subtotal=subtotal, tier=tier)
        for tier in available_tiers(zone)
    ]


def estimated_delivery_date(zone, tier=ServiceTier.STANDARD, start: Optional[date] = None) -> date:
    """Latest expected delivery date including the processing buffer"""
    rate = get_zone_rate(zone)
    _, days_factor = TIER_FACTORS[ServiceTier(str(tier).upper())]
    _, days_max = _tier_days(rate.estimated_days_min, rate.estimated_days_max, days_factor)
    start = start or date.today()
    return start + timedelta(days=days_max + shipping_setting('PROCESSING_DAYS'))
