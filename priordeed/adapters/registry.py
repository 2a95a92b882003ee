"""Routing from (county, state) to the adapter that knows those portals."""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from priordeed.adapters.base import SiteAdapter
from priordeed.exceptions import UnsupportedJurisdictionError

AdapterFactory = Callable[[], SiteAdapter]

# Spellings seen in geocoder output and user input
COUNTY_ALIASES = {
    "miami-dade": "Miami-Dade",
    "miami dade": "Miami-Dade",
    "miamidade": "Miami-Dade",
    "dade": "Miami-Dade",
    "palm beach": "Palm Beach",
    "palmbeach": "Palm Beach",
    "st. johns": "St. Johns",
    "st johns": "St. Johns",
    "saint johns": "St. Johns",
    "st. lucie": "St. Lucie",
    "st lucie": "St. Lucie",
    "saint lucie": "St. Lucie",
    "los angeles": "Los Angeles",
}

STATE_NAMES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "district of columbia": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID", "illinois": "IL",
    "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA",
    "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}


def normalize_county_name(county: Optional[str]) -> str:
    """'hillsborough county' -> 'Hillsborough', 'miami dade' -> 'Miami-Dade'."""
    if not county:
        return ""
    normalized = re.sub(r"\s+", " ", county.strip().lower())
    normalized = re.sub(r"\s+(county|parish)$", "", normalized)
    if normalized in COUNTY_ALIASES:
        return COUNTY_ALIASES[normalized]
    return " ".join(part.capitalize() for part in normalized.split(" "))


def normalize_state(state: Optional[str]) -> str:
    """'fl', 'Florida' and 'US-FL' all become 'FL'."""
    if not state:
        return ""
    value = state.strip()
    if value.upper().startswith("US-"):
        value = value[3:]
    if len(value) == 2:
        return value.upper()
    return STATE_NAMES.get(value.lower(), value.upper())


class AdapterRegistry:
    def __init__(self):
        self._factories: Dict[Tuple[str, str], AdapterFactory] = {}
        self._captcha: Dict[Tuple[str, str], bool] = {}

    @staticmethod
    def key(county: Optional[str], state: Optional[str]) -> Tuple[str, str]:
        return normalize_county_name(county), normalize_state(state)

    def register(self, county: str, state: str, factory: AdapterFactory,
                 requires_captcha: bool = False) -> None:
        key = self.key(county, state)
        if key in self._factories:
            logger.warning("Replacing adapter registration for {county}, {state}", county=key[0], state=key[1])
        self._factories[key] = factory
        self._captcha[key] = requires_captcha

    def resolve(self, county: Optional[str], state: Optional[str]) -> AdapterFactory:
        key = self.key(county, state)
        factory = self._factories.get(key)
        if factory is None:
            raise UnsupportedJurisdictionError(f'County "{key[0]}, {key[1]}" is not yet supported')
        return factory

    def create(self, county: Optional[str], state: Optional[str]) -> SiteAdapter:
        return self.resolve(county, state)()

    def requires_captcha(self, county: Optional[str], state: Optional[str]) -> bool:
        return self._captcha.get(self.key(county, state), False)

    def is_supported(self, county: Optional[str], state: Optional[str]) -> bool:
        return self.key(county, state) in self._factories

    def supported(self) -> List[dict]:
        return [
            {"county": county, "state": state, "requiresCaptcha": self._captcha[(county, state)]}
            for county, state in sorted(self._factories)
        ]


def build_default_registry() -> AdapterRegistry:
    from priordeed.adapters.hillsborough import HillsboroughAdapter

    registry = AdapterRegistry()
    registry.register(
        HillsboroughAdapter.county,
        HillsboroughAdapter.state,
        HillsboroughAdapter,
        requires_captcha=HillsboroughAdapter.requires_captcha,
    )
    return registry


default_registry = build_default_registry()
