"""
CAPTCHA solving for adapters.

Adapters call ``await solver.solve(site_key, page_url)`` and inject the token.
The orchestrator never talks to a solver directly.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import requests
from loguru import logger

from priordeed.config import Settings
from priordeed.exceptions import CaptchaSolverError

if TYPE_CHECKING:
    from priordeed.browser import BrowserSession


class CaptchaSolver(ABC):
    @abstractmethod
    async def solve(self, site_key: str, page_url: str) -> str:
        """Return a reCAPTCHA response token or raise CaptchaSolverError."""


class TwoCaptchaSolver(CaptchaSolver):
    """reCAPTCHA v2 through the 2Captcha HTTP API."""

    SUBMIT_URL = "https://2captcha.com/in.php"
    RESULT_URL = "https://2captcha.com/res.php"

    def __init__(self, api_key: str, poll_interval_s: float = 5.0, timeout_s: float = 180.0,
                 session: Optional[requests.Session] = None):
        if not api_key:
            raise ValueError("2Captcha API key is required")
        self.api_key = api_key
        self.poll_interval_s = poll_interval_s
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    async def solve(self, site_key: str, page_url: str) -> str:
        return await asyncio.to_thread(self._solve_blocking, site_key, page_url)

    def _solve_blocking(self, site_key: str, page_url: str) -> str:
        job_id = self._submit(site_key, page_url)
        logger.info("2Captcha job {job} submitted for {url}", job=job_id, url=page_url)

        deadline = time.monotonic() + self.timeout_s
        while time.monotonic() < deadline:
            time.sleep(self.poll_interval_s)
            data = self._get(self.RESULT_URL, {"key": self.api_key, "action": "get", "id": job_id, "json": 1})
            if data.get("status") == 1:
                logger.info("2Captcha job {job} solved", job=job_id)
                return str(data["request"])
            if data.get("request") != "CAPCHA_NOT_READY":
                raise CaptchaSolverError(f"2Captcha rejected job {job_id}: {data.get('request')}")
        raise CaptchaSolverError(f"2Captcha job {job_id} not solved within {self.timeout_s:.0f}s")

    def _submit(self, site_key: str, page_url: str) -> str:
        data = self._get(self.SUBMIT_URL, {
            "key": self.api_key,
            "method": "userrecaptcha",
            "googlekey": site_key,
            "pageurl": page_url,
            "json": 1,
        })
        if data.get("status") != 1:
            raise CaptchaSolverError(f"2Captcha submit failed: {data.get('request')}")
        return str(data["request"])

    def _get(self, url: str, params: dict) -> dict:
        try:
            response = self.session.get(url, params=params, timeout=30)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise CaptchaSolverError(f"2Captcha request failed: {e}") from e


class ManualCaptchaSolver(CaptchaSolver):
    """
    Waits for a person to tick the challenge in a headed browser.

    Used when no API token is configured. Polls the page's
    ``g-recaptcha-response`` textarea until it holds a token.
    """

    TOKEN_SCRIPT = "() => { const el = document.querySelector('[name=\"g-recaptcha-response\"]'); return el ? el.value : ''; }"

    def __init__(self, session: "BrowserSession", wait_s: float = 120.0, poll_interval_s: float = 2.0):
        self.session = session
        self.wait_s = wait_s
        self.poll_interval_s = poll_interval_s

    async def solve(self, site_key: str, page_url: str) -> str:
        logger.warning("Waiting up to {s:.0f}s for a manual CAPTCHA solve on {url}", s=self.wait_s, url=page_url)
        deadline = time.monotonic() + self.wait_s
        while time.monotonic() < deadline:
            token = await self.session.page.evaluate(self.TOKEN_SCRIPT)
            if token:
                logger.info("Manual CAPTCHA solve detected")
                return token
            await asyncio.sleep(self.poll_interval_s)
        raise CaptchaSolverError(f"CAPTCHA was not solved manually within {self.wait_s:.0f}s")


def build_solver(settings: Settings, session: Optional["BrowserSession"] = None) -> Optional[CaptchaSolver]:
    if settings.twocaptcha_token:
        return TwoCaptchaSolver(settings.twocaptcha_token, timeout_s=settings.captcha_timeout_s)
    if session is not None and not settings.headless:
        return ManualCaptchaSolver(session, wait_s=settings.manual_captcha_wait_s)
    return None
