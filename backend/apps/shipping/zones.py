# apps/shipping/zones.py

"""
Static shipping zone table.

Countries are grouped into zones sharing a rate table. The table is immutable
configuration loaded at import time; unknown destinations fall back to the
INTERNATIONAL zone, which carries the most expensive rates.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Tuple

from django.conf import settings
from django.db import models


class ShippingZone(models.TextChoices):
    DOMESTIC = 'DOMESTIC', 'Kenya (Local)'
    REGIONAL = 'REGIONAL', 'East Africa'
    AFRICA = 'AFRICA', 'Rest of Africa'
    ASIA_MIDDLE_EAST = 'ASIA_MIDDLE_EAST', 'Asia & Middle East'
    EUROPE = 'EUROPE', 'Europe'
    AMERICAS = 'AMERICAS', 'Americas'
    OCEANIA = 'OCEANIA', 'Oceania'
    INTERNATIONAL = 'INTERNATIONAL', 'Rest of World'


class ServiceTier(models.TextChoices):
    ECONOMY = 'ECONOMY', 'Economy'
    STANDARD = 'STANDARD', 'Standard'
    EXPRESS = 'EXPRESS', 'Express'


@dataclass(frozen=True)
class ZoneRate:
    """Rate table for a single zone; amounts in USD"""
    base_rate: Decimal
    per_kg_rate: Decimal
    free_shipping_threshold: Decimal
    estimated_days_min: int
    estimated_days_max: int
    courier: str


ZONE_RATES: Dict[str, ZoneRate] = {
    ShippingZone.DOMESTIC: ZoneRate(Decimal('5'), Decimal('2'), Decimal('100'), 1, 3, 'Local Courier'),
    ShippingZone.REGIONAL: ZoneRate(Decimal('25'), Decimal('12'), Decimal('150'), 3, 5, 'EMS/DHL'),
    ShippingZone.AFRICA: ZoneRate(Decimal('40'), Decimal('18'), Decimal('250'), 5, 10, 'DHL/FedEx'),
    ShippingZone.ASIA_MIDDLE_EAST: ZoneRate(Decimal('38'), Decimal('15'), Decimal('250'), 5, 8, 'DHL/FedEx'),
    ShippingZone.EUROPE: ZoneRate(Decimal('45'), Decimal('18'), Decimal('300'), 5, 8, 'DHL/FedEx/UPS'),
    ShippingZone.AMERICAS: ZoneRate(Decimal('50'), Decimal('22'), Decimal('300'), 6, 10, 'FedEx/UPS'),
    ShippingZone.OCEANIA: ZoneRate(Decimal('50'), Decimal('22'), Decimal('350'), 7, 12, 'DHL/FedEx'),
    ShippingZone.INTERNATIONAL: ZoneRate(Decimal('55'), Decimal('25'), Decimal('400'), 7, 14, 'DHL/FedEx'),
}

# Cost multiplier, day-range multiplier
TIER_FACTORS: Dict[str, Tuple[Decimal, Decimal]] = {
    ServiceTier.ECONOMY: (Decimal('0.8'), Decimal('1.5')),
    ServiceTier.STANDARD: (Decimal('1'), Decimal('1')),
    ServiceTier.EXPRESS: (Decimal('1.5'), Decimal('0.5')),
}

TIER_COURIERS = {
    ServiceTier.ECONOMY: 'EMS (Economy)',
    ServiceTier.EXPRESS: 'DHL Express (Priority)',
}

COUNTRY_ZONES: Dict[str, Tuple[str, str]] = {
    'KE': ('Kenya', ShippingZone.DOMESTIC),
    'TZ': ('Tanzania', ShippingZone.REGIONAL),
    'UG': ('Uganda', ShippingZone.REGIONAL),
    'RW': ('Rwanda', ShippingZone.REGIONAL),
    'BI': ('Burundi', ShippingZone.REGIONAL),
    'SS': ('South Sudan', ShippingZone.REGIONAL),
    'ET': ('Ethiopia', ShippingZone.REGIONAL),
    'ZA': ('South Africa', ShippingZone.AFRICA),
    'NG': ('Nigeria', ShippingZone.AFRICA),
    'GH': ('Ghana', ShippingZone.AFRICA),
    'EG': ('Egypt', ShippingZone.AFRICA),
    'MA': ('Morocco', ShippingZone.AFRICA),
    'AE': ('United Arab Emirates', ShippingZone.ASIA_MIDDLE_EAST),
    'SA': ('Saudi Arabia', ShippingZone.ASIA_MIDDLE_EAST),
    'IN': ('India', ShippingZone.ASIA_MIDDLE_EAST),
    'CN': ('China', ShippingZone.ASIA_MIDDLE_EAST),
    'JP': ('Japan', ShippingZone.ASIA_MIDDLE_EAST),
    'SG': ('Singapore', ShippingZone.ASIA_MIDDLE_EAST),
    'MY': ('Malaysia', ShippingZone.ASIA_MIDDLE_EAST),
    'TH': ('Thailand', ShippingZone.ASIA_MIDDLE_EAST),
    'KR': ('South Korea', ShippingZone.ASIA_MIDDLE_EAST),
    'GB': ('United Kingdom', ShippingZone.EUROPE),
    'DE': ('Germany', ShippingZone.EUROPE),
    'FR': ('France', ShippingZone.EUROPE),
    'NL': ('Netherlands', ShippingZone.EUROPE),
    'BE': ('Belgium', ShippingZone.EUROPE),
    'IT': ('Italy', ShippingZone.EUROPE),
    'ES': ('Spain', ShippingZone.EUROPE),
    'US': ('United States', ShippingZone.AMERICAS),
    'CA': ('Canada', ShippingZone.AMERICAS),
    'BR': ('Brazil', ShippingZone.AMERICAS),
    'MX': ('Mexico', ShippingZone.AMERICAS),
    'AU': ('Australia', ShippingZone.OCEANIA),
    'NZ': ('New Zealand', ShippingZone.OCEANIA),
}

DEFAULT_SHIPPING_SETTINGS = {
    'INCLUDED_WEIGHT_KG': Decimal('0.5'),
    'MIN_BILLABLE_WEIGHT_KG': Decimal('0.5'),
    'DEFAULT_ITEM_WEIGHT_KG': Decimal('0.5'),
    'USD_TO_KES': Decimal('150'),
    'VOLUMETRIC_DIVISOR': Decimal('5000'),
    'PROCESSING_DAYS': 1,
}


def shipping_setting(name):
    """Read a shipping constant, allowing override via settings.SHIPPING"""
    overrides = getattr(settings, 'SHIPPING', None) or {}
    value = overrides.get(name, DEFAULT_SHIPPING_SETTINGS[name])
    if isinstance(DEFAULT_SHIPPING_SETTINGS[name], Decimal):
        return Decimal(str(value))
    return value


def normalize_country_code(country_code) -> str:
    if country_code is None or not str(country_code).strip():
        raise ValueError("Country code is required")
    return str(country_code).strip().upper()


def get_zone(country_code) -> str:
    """Map a country code to its zone; unknown codes fail closed to INTERNATIONAL"""
    code = normalize_country_code(country_code)
    entry = COUNTRY_ZONES.get(code)
    if entry is None:
        return ShippingZone.INTERNATIONAL
    return entry[1]


def get_zone_rate(zone) -> ZoneRate:
    return ZONE_RATES[zone]


def get_country_name(country_code) -> str:
    entry = COUNTRY_ZONES.get(normalize_country_code(country_code))
    return entry[0] if entry else 'Unknown'


def countries_in_zone(zone) -> List[str]:
    return [code for code, (_, country_zone) in COUNTRY_ZONES.items() if country_zone == zone]
