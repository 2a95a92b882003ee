"""
One-shot prior deed retrieval: route the address, open a browser session,
run the orchestrator, close the session.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from loguru import logger

from priordeed.adapters.base import AdapterContext
from priordeed.adapters.registry import AdapterRegistry, default_registry
from priordeed.browser import BrowserSession, BrowserSettings
from priordeed.captcha import build_solver
from priordeed.config import Settings
from priordeed.exceptions import JurisdictionLookupError, UnsupportedJurisdictionError
from priordeed.geocoder import locate_jurisdiction
from priordeed.models import FailureStage, PropertyQuery, ScrapeResult
from priordeed.orchestrator import DeedOrchestrator


def _identity_failure(message: str, started: float, diagnostics: Optional[list] = None) -> ScrapeResult:
    elapsed = int((time.perf_counter() - started) * 1000)
    logger.warning("Routing failed: {msg}", msg=message)
    return ScrapeResult.failed(FailureStage.IDENTITY, message, elapsed, diagnostics)


async def fetch_prior_deed(address: str, county: Optional[str] = None, state: Optional[str] = None,
                           settings: Optional[Settings] = None,
                           registry: Optional[AdapterRegistry] = None) -> ScrapeResult:
    """Fetch the prior deed for ``address`` as a single PDF."""
    started = time.perf_counter()
    settings = settings or Settings.from_env()
    registry = registry or default_registry

    try:
        query = PropertyQuery(raw_address=address or "")
    except ValueError:
        return _identity_failure("address must not be blank", started)

    if not (county and state):
        try:
            county, state = await asyncio.to_thread(
                locate_jurisdiction, query.raw_address, user_agent=settings.geocoder_user_agent
            )
        except JurisdictionLookupError as e:
            return _identity_failure(f"could not determine county/state: {e}", started)

    try:
        adapter = registry.create(county, state)
    except UnsupportedJurisdictionError as e:
        return _identity_failure(str(e), started)

    logger.info("Fetching prior deed for {addr} via {adapter}", addr=query.raw_address, adapter=adapter.name)
    session = BrowserSession(BrowserSettings.from_settings(settings))
    try:
        try:
            await session.start()
        except Exception as e:
            logger.exception("Browser session failed to start")
            return _identity_failure(f"browser session failed to start: {e}", started)
        ctx = AdapterContext(
            address=query.raw_address,
            session=session,
            solver=build_solver(settings, session) if adapter.requires_captcha else None,
            stage_timeout_ms=settings.stage_timeout_ms,
        )
        return await DeedOrchestrator(stage_timeout_ms=settings.stage_timeout_ms).run(query, adapter, ctx)
    finally:
        try:
            await session.close()
        except Exception as e:
            logger.warning("Browser session did not close cleanly: {err}", err=e)


async def run(address: str) -> ScrapeResult:
    return await fetch_prior_deed(address)
