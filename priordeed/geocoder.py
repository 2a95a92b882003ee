"""
County/state lookup for a free-form address via Nominatim (OpenStreetMap).

Only used to pick an adapter when the caller did not say which county the
address is in. Nothing is cached between calls.
"""
from __future__ import annotations

from typing import Optional, Tuple

import requests
from loguru import logger

from priordeed.adapters.registry import normalize_county_name, normalize_state
from priordeed.exceptions import JurisdictionLookupError

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "priordeed/0.1 (deed retrieval)"


def locate_jurisdiction(address: str, session: Optional[requests.Session] = None,
                        user_agent: str = USER_AGENT) -> Tuple[str, str]:
    """Return (county, state code) for an address."""
    if not address or not address.strip():
        raise JurisdictionLookupError("empty address")
    http = session or requests
    params = {
        "q": address,
        "format": "json",
        "addressdetails": 1,
        "limit": 1,
        "countrycodes": "us",
    }
    try:
        response = http.get(NOMINATIM_URL, params=params, headers={"User-Agent": user_agent}, timeout=10)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Geocode failed for {addr}: {err}", addr=address, err=e)
        raise JurisdictionLookupError(f"geocoder unavailable: {e}") from e

    if not data:
        logger.warning("Geocode: no result for {addr}", addr=address)
        raise JurisdictionLookupError(f"no geocoder match for {address!r}")

    details = data[0].get("address") or {}
    county = normalize_county_name(details.get("county"))
    state = normalize_state(details.get("ISO3166-2-lvl4") or details.get("state"))
    if not county or not state:
        raise JurisdictionLookupError(f"geocoder match for {address!r} has no county/state")
    logger.info("Geocoded {addr} -> {county}, {state}", addr=address, county=county, state=state)
    return county, state
