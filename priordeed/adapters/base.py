"""SiteAdapter contract and the per-run context threaded through every call."""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from priordeed.models import DeedAsset, PropertyIdentity, PropertyQuery, TransactionReference

if TYPE_CHECKING:
    from priordeed.browser import BrowserSession
    from priordeed.captcha import CaptchaSolver


def _default_run_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(slots=True)
class AdapterContext:
    """
    Everything a stage call may need for one run.

    Created once per orchestrator run and passed explicitly into each adapter
    call; adapters must not stash per-run state on themselves.
    """
    address: str
    run_id: str = field(default_factory=_default_run_id)
    session: Optional["BrowserSession"] = None
    solver: Optional["CaptchaSolver"] = None
    stage_timeout_ms: Optional[int] = None
    diagnostics: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.perf_counter)

    def note(self, message: str) -> None:
        elapsed = (time.perf_counter() - self.started_at) * 1000
        self.diagnostics.append(f"[{elapsed:8.0f}ms] {message}")

    def require_session(self) -> "BrowserSession":
        if self.session is None:
            raise RuntimeError("this adapter needs a BrowserSession on the context")
        return self.session


class SiteAdapter(ABC):
    """
    Jurisdiction-specific implementation of the four pipeline capabilities.

    The orchestrator depends only on this interface. Implementations may use
    any browser heuristic internally; a locate call that finds nothing returns
    None (or raises DocumentNotFound).
    """

    county: str = ""
    state: str = ""
    requires_captcha: bool = False

    @abstractmethod
    async def resolve_identity(self, query: PropertyQuery, ctx: AdapterContext) -> PropertyIdentity:
        ...

    @abstractmethod
    async def find_transaction_references(
        self, identity: PropertyIdentity, ctx: AdapterContext
    ) -> Sequence[TransactionReference]:
        """Ordered most recent first. Empty is a valid answer."""

    @abstractmethod
    async def locate_document(
        self, reference: TransactionReference, ctx: AdapterContext
    ) -> Optional[DeedAsset]:
        ...

    @abstractmethod
    async def locate_document_by_owner_name(
        self, identity: PropertyIdentity, ctx: AdapterContext
    ) -> Optional[DeedAsset]:
        ...

    @property
    def name(self) -> str:
        return f"{self.county} County, {self.state}" if self.county else type(self).__name__
