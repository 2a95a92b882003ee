"""
Runtime configuration.

Read from the environment (and a local ``.env`` when present). Only the
collaborators (browser session, captcha solver, geocoder, API) consume these
values; the orchestrator and materializer are handed what they need.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_STAGE_TIMEOUT_MS = 120_000
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(slots=True)
class Settings:
    browser_executable_path: Optional[str] = None
    headless: bool = True
    stage_timeout_ms: int = DEFAULT_STAGE_TIMEOUT_MS
    download_dir: Path = field(default_factory=lambda: Path("downloads"))
    twocaptcha_token: Optional[str] = None
    captcha_timeout_s: int = 180
    manual_captcha_wait_s: int = 120
    user_agent: str = DEFAULT_USER_AGENT
    geocoder_user_agent: str = "priordeed/0.1 (deed retrieval)"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            browser_executable_path=os.getenv("BROWSER_EXECUTABLE_PATH") or None,
            headless=_env_bool("HEADLESS", True),
            stage_timeout_ms=_env_int("STAGE_TIMEOUT_MS", DEFAULT_STAGE_TIMEOUT_MS),
            download_dir=Path(os.getenv("DOWNLOAD_DIR") or "downloads"),
            twocaptcha_token=os.getenv("TWOCAPTCHA_TOKEN") or None,
            captcha_timeout_s=_env_int("CAPTCHA_TIMEOUT_S", 180),
            manual_captcha_wait_s=_env_int("MANUAL_CAPTCHA_WAIT_S", 120),
            user_agent=os.getenv("BROWSER_USER_AGENT") or DEFAULT_USER_AGENT,
            geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT") or "priordeed/0.1 (deed retrieval)",
        )

    @property
    def has_captcha_token(self) -> bool:
        return bool(self.twocaptcha_token)
