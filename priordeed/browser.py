"""
Headless browser session used by site adapters.

One session per orchestrator run; never share it between concurrent runs.
Transient navigation retries live here rather than in the orchestrator.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from loguru import logger
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from playwright_stealth import Stealth

from priordeed.config import Settings

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
]


async def _accept_dialog(dialog) -> None:
    try:
        await dialog.accept()
    except Exception as e:
        logger.debug("Dialog already handled: {err}", err=e)


@dataclass(slots=True)
class BrowserSettings:
    executable_path: Optional[str] = None
    headless: bool = True
    timeout_ms: int = 60_000
    download_dir: Path = field(default_factory=lambda: Path("downloads"))
    auto_dismiss_dialogs: bool = True
    user_agent: Optional[str] = None
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    navigation_retries: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrowserSettings":
        return cls(
            executable_path=settings.browser_executable_path,
            headless=settings.headless,
            timeout_ms=settings.stage_timeout_ms,
            download_dir=settings.download_dir,
            user_agent=settings.user_agent,
        )


class BrowserSession:
    def __init__(self, settings: Optional[BrowserSettings] = None):
        self.settings = settings or BrowserSettings()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            executable_path=self.settings.executable_path,
            args=LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(
            user_agent=self.settings.user_agent,
            viewport=self.settings.viewport,
            locale="en-US",
            accept_downloads=True,
        )
        self._context.set_default_timeout(self.settings.timeout_ms)
        self._page = await self.new_page()
        logger.info(
            "Browser session started (headless={headless})",
            headless=self.settings.headless,
        )

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
            self._page = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("browser session is not started")
        return self._context

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("browser session is not started")
        return self._page

    async def new_page(self) -> Page:
        page = await self.context.new_page()
        await Stealth().apply_stealth_async(page)
        if self.settings.auto_dismiss_dialogs:
            page.on("dialog", _accept_dialog)
        return page

    async def goto(self, url: str, wait_until: str = "domcontentloaded", page: Optional[Page] = None) -> Optional[Response]:
        """Navigate, retrying timeouts and net:: errors a couple of times."""
        target = page or self.page
        attempts = self.settings.navigation_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await target.goto(url, wait_until=wait_until, timeout=self.settings.timeout_ms)
            except PlaywrightTimeoutError:
                if attempt == attempts:
                    raise
                logger.warning("Timeout loading {url} (attempt {n}/{total})", url=url, n=attempt, total=attempts)
            except Exception as e:
                if "net::" not in str(e) or attempt == attempts:
                    raise
                logger.warning("Network error loading {url}: {err}", url=url, err=e)
            await asyncio.sleep(attempt)
        return None

    async def capture_responses(
        self,
        predicate: Callable[[Response], bool],
        trigger: Callable[[], Awaitable[object]],
        settle_ms: int = 2000,
        page: Optional[Page] = None,
    ) -> List[bytes]:
        """
        Bodies of responses matching ``predicate`` while ``trigger`` runs.

        Bodies are returned in the order the responses arrived, which for
        page-tile viewers is page order.
        """
        target = page or self.page
        matched: List[Response] = []

        def _on_response(response: Response) -> None:
            try:
                if predicate(response):
                    matched.append(response)
            except Exception as e:
                logger.debug("Response predicate raised for {url}: {err}", url=response.url, err=e)

        target.on("response", _on_response)
        try:
            await trigger()
            await target.wait_for_timeout(settle_ms)
        finally:
            target.remove_listener("response", _on_response)

        bodies: List[bytes] = []
        for response in matched:
            try:
                bodies.append(await response.body())
            except Exception as e:
                logger.warning("Could not read body of {url}: {err}", url=response.url, err=e)
        logger.debug("Captured {n} response(s)", n=len(bodies))
        return bodies

    async def capture_download(self, trigger: Callable[[], Awaitable[object]], page: Optional[Page] = None) -> bytes:
        target = page or self.page
        async with target.expect_download(timeout=self.settings.timeout_ms) as download_info:
            await trigger()
        download = await download_info.value
        self.settings.download_dir.mkdir(parents=True, exist_ok=True)
        path = self.settings.download_dir / download.suggested_filename
        await download.save_as(path)
        try:
            return path.read_bytes()
        finally:
            path.unlink(missing_ok=True)

    async def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """GET through the browser context so the page's cookies ride along."""
        response = await self.context.request.get(url, headers=headers, timeout=self.settings.timeout_ms)
        if not response.ok:
            raise RuntimeError(f"GET {url} returned HTTP {response.status}")
        return await response.body()
