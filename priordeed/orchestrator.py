"""
Prior deed orchestrator.

Drives one SiteAdapter through the four stages

    IDENTITY -> TRANSACTION -> DOCUMENT -> MATERIALIZE

with the owner-name search as the fallback edge out of TRANSACTION (no
references) and DOCUMENT (all references exhausted). Every run produces
exactly one ScrapeResult; adapter, timeout and materializer errors are
collapsed into the failing stage's tag. Only adapter contract violations
escape, since those are programming defects.

There are no automatic retries here. Transient network retry belongs to the
browser session.
"""

from __future__ import annotations

import asyncio
import functools
import re
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from priordeed.adapters.base import AdapterContext, SiteAdapter
from priordeed.exceptions import AdapterContractError, DocumentNotFound, MaterializeError
from priordeed.materializer import DocumentMaterializer
from priordeed.models import (
    REFERENCE_TYPES,
    DeedAsset,
    FailureStage,
    PropertyIdentity,
    PropertyQuery,
    ScrapeResult,
    TransactionReference,
)
from priordeed.utils.logging_utils import bind_context

OWNER_SEARCH_TOKEN = "owner_search"


class StageFailure(Exception):
    def __init__(self, stage: FailureStage, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")


def build_filename(identity: PropertyIdentity, token: str) -> str:
    county = _slug(identity.county or "unknown")
    state = _slug(identity.state or "xx")
    return f"{county}_{state}_deed_{token}.pdf"


class DeedOrchestrator:
    def __init__(self, materializer: Optional[DocumentMaterializer] = None,
                 stage_timeout_ms: Optional[int] = None):
        self.materializer = materializer or DocumentMaterializer()
        self.stage_timeout_ms = stage_timeout_ms

    async def run(self, query: PropertyQuery, adapter: SiteAdapter,
                  context: Optional[AdapterContext] = None) -> ScrapeResult:
        ctx = context or AdapterContext(address=query.raw_address)
        if ctx.stage_timeout_ms is None:
            ctx.stage_timeout_ms = self.stage_timeout_ms
        log = bind_context(run_id=ctx.run_id, address=query.raw_address, adapter=adapter.name)
        started = time.perf_counter()

        log.info("deed_run_start")
        try:
            pdf_bytes, filename = await self._execute(query, adapter, ctx, log)
        except StageFailure as failure:
            elapsed = int((time.perf_counter() - started) * 1000)
            ctx.note(f"failed at {failure.stage.value}: {failure.message}")
            log.warning(
                "deed_run_end",
                success=False,
                failure_stage=failure.stage.value,
                error=failure.message,
                elapsed_ms=elapsed,
            )
            return ScrapeResult.failed(failure.stage, failure.message, elapsed, ctx.diagnostics)

        elapsed = int((time.perf_counter() - started) * 1000)
        log.info("deed_run_end", success=True, filename=filename, size=len(pdf_bytes), elapsed_ms=elapsed)
        return ScrapeResult.succeeded(pdf_bytes, filename, elapsed, ctx.diagnostics)

    def run_sync(self, query: PropertyQuery, adapter: SiteAdapter,
                 context: Optional[AdapterContext] = None) -> ScrapeResult:
        return asyncio.run(self.run(query, adapter, context))

    async def _execute(self, query: PropertyQuery, adapter: SiteAdapter,
                       ctx: AdapterContext, log: Any) -> Tuple[bytes, str]:
        # Stage 1: identity
        try:
            identity = await self._call(FailureStage.IDENTITY, adapter.resolve_identity(query, ctx), ctx, log)
        except AdapterContractError:
            raise
        except Exception as e:
            raise StageFailure(FailureStage.IDENTITY, f"identity resolution failed: {_describe(e)}") from e
        if not isinstance(identity, PropertyIdentity):
            raise AdapterContractError(
                f"{adapter.name}.resolve_identity returned {type(identity).__name__}, expected PropertyIdentity"
            )
        if not identity.is_routable:
            raise StageFailure(
                FailureStage.IDENTITY,
                f"could not determine county/state for {query.raw_address!r}",
            )
        ctx.note(f"identity: parcel={identity.parcel_id} owner={identity.owner_name} "
                 f"county={identity.county} state={identity.state}")

        # Stage 2: transaction references
        try:
            references = await self._call(
                FailureStage.TRANSACTION, adapter.find_transaction_references(identity, ctx), ctx, log
            )
        except AdapterContractError:
            raise
        except Exception as e:
            raise StageFailure(FailureStage.TRANSACTION, f"transaction lookup failed: {_describe(e)}") from e
        references = self._check_references(adapter, references)
        ctx.note(f"{len(references)} transaction reference(s): {', '.join(str(r) for r in references) or '-'}")

        # Stage 3: document, falling back to the owner-name search once
        asset: Optional[DeedAsset] = None
        token = OWNER_SEARCH_TOKEN
        last_error: Optional[str] = None

        for index, reference in enumerate(references, start=1):
            asset, error = await self._locate(
                FailureStage.DOCUMENT, functools.partial(adapter.locate_document, reference, ctx), ctx, log,
                label=f"locate_document {reference} ({index}/{len(references)})",
                adapter=adapter,
            )
            if asset is not None:
                token = reference.token()
                break
            last_error = error or last_error

        if asset is None:
            fallback_stage = FailureStage.DOCUMENT if references else FailureStage.TRANSACTION
            log.info("owner_name_fallback", owner=identity.owner_name, after_references=len(references))
            asset, error = await self._locate(
                fallback_stage, functools.partial(adapter.locate_document_by_owner_name, identity, ctx), ctx, log,
                label="locate_document_by_owner_name",
                adapter=adapter,
            )
            last_error = error or last_error
            if asset is None:
                detail = f" (last error: {last_error})" if last_error else ""
                if references:
                    raise StageFailure(
                        FailureStage.DOCUMENT,
                        f"no document located for {len(references)} reference(s) or by owner name{detail}",
                    )
                raise StageFailure(
                    FailureStage.TRANSACTION,
                    f"no transaction references found and owner-name search found nothing{detail}",
                )

        ctx.note(f"asset located: {len(asset.buffers)} buffer(s), {asset.total_size} bytes, "
                 f"source={asset.source_url or '-'}")

        # Stage 4: materialize
        try:
            pdf_bytes = await self._call(
                FailureStage.MATERIALIZE,
                asyncio.to_thread(self.materializer.materialize, asset),
                ctx, log,
            )
        except MaterializeError as e:
            raise StageFailure(FailureStage.MATERIALIZE, str(e)) from e
        except Exception as e:
            raise StageFailure(FailureStage.MATERIALIZE, f"assembly error: {_describe(e)}") from e

        return pdf_bytes, build_filename(identity, token)

    async def _call(self, stage: FailureStage, awaitable: Awaitable[Any], ctx: AdapterContext, log: Any,
                    label: Optional[str] = None) -> Any:
        """Await one stage call under the per-stage deadline."""
        label = label or stage.value
        timeout = ctx.stage_timeout_ms / 1000 if ctx.stage_timeout_ms else None
        started = time.perf_counter()
        log.debug("stage_start", stage=stage.value, call=label)
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            ctx.note(f"{label} timed out after {ctx.stage_timeout_ms}ms")
            raise
        finally:
            log.debug("stage_end", stage=stage.value, call=label,
                      duration_ms=round((time.perf_counter() - started) * 1000, 1))

    async def _locate(self, stage: FailureStage, call: Callable[[], Awaitable[Any]], ctx: AdapterContext, log: Any,
                      label: str, adapter: SiteAdapter) -> Tuple[Optional[DeedAsset], Optional[str]]:
        """
        One locate call. Returns (asset, None) on success and (None, reason)
        when the call found nothing, failed or timed out.
        """
        try:
            asset = await self._call(stage, call(), ctx, log, label=label)
        except AdapterContractError:
            raise
        except DocumentNotFound as e:
            ctx.note(f"{label}: not found ({e})" if str(e) else f"{label}: not found")
            return None, None
        except Exception as e:
            reason = _describe(e)
            ctx.note(f"{label}: {reason}")
            log.warning("{call} failed: {reason}", call=label, reason=reason)
            return None, reason

        if asset is None:
            ctx.note(f"{label}: not found")
            return None, None
        if not isinstance(asset, DeedAsset):
            raise AdapterContractError(
                f"{adapter.name} {label} returned {type(asset).__name__}, expected DeedAsset or None"
            )
        if asset.is_empty:
            ctx.note(f"{label}: empty asset")
            return None, "empty asset"
        return asset, None

    @staticmethod
    def _check_references(adapter: SiteAdapter, references: Any) -> List[TransactionReference]:
        if references is None or isinstance(references, (str, bytes)) or not isinstance(references, Sequence):
            raise AdapterContractError(
                f"{adapter.name}.find_transaction_references returned {type(references).__name__}, expected a sequence"
            )
        for ref in references:
            if not isinstance(ref, REFERENCE_TYPES):
                raise AdapterContractError(
                    f"{adapter.name}.find_transaction_references yielded {type(ref).__name__}"
                )
        return list(references)


async def run(query: PropertyQuery, adapter: SiteAdapter, **kwargs: Any) -> ScrapeResult:
    """Module-level shortcut: one run with a default orchestrator."""
    logger.debug("Running default orchestrator for {adapter}", adapter=adapter.name)
    return await DeedOrchestrator(**kwargs).run(query, adapter)
