"""
Hillsborough County, FL.

- Identity and sales history: Property Appraiser (HCPA) GIS property search,
  driven through the browser session.
- Documents: Clerk's Official Records Index (ORI) JSON API.

Prior-deed policy: the most recent recorded deed on the parcel's sales
history, i.e. the deed that conveyed the property to the current owner.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from priordeed.adapters.base import AdapterContext, SiteAdapter
from priordeed.clients.ori_client import ORIClient, party_names, record_date_text, record_timestamp
from priordeed.exceptions import IdentityResolutionError
from priordeed.models import (
    BookPage,
    DeedAsset,
    DocumentId,
    InstrumentNumber,
    PropertyIdentity,
    PropertyQuery,
    TransactionReference,
)
from priordeed.utils.logging_utils import log_lookup
from priordeed.utils.name_matcher import NameMatcher

HCPA_BASE_URL = "https://gis.hcpafl.org/propertysearch/"
HCPA_PARCEL_URL = "https://gis.hcpafl.org/propertysearch/#/parcel/basic/{parcel_id}"

# Sales-history document codes that are conveyances
DEED_CODES = {"WD", "QC", "SW", "DD", "TD", "CD", "FD", "PR", "TR", "CT", "GD", "WM"}

ROWS_SCRIPT = (
    "rows => rows.map(r => Array.from(r.querySelectorAll('td')).map(td => (td.innerText || '').trim()))"
)


def parse_record_card(text: str, url: str = "") -> Dict[str, Optional[str]]:
    """Folio, owner and site address from the HCPA record card text."""
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    result: Dict[str, Optional[str]] = {"folio": None, "owner": None, "site_address": None, "parcel_id": None}

    match = re.search(r"Folio:?\s*([\d-]{6,})", text or "")
    if match:
        result["folio"] = match.group(1)

    for i, line in enumerate(lines):
        label = line.rstrip(":").lower()
        if result["owner"] is None and label in ("owner", "owner name", "owner(s)") and i + 1 < len(lines):
            result["owner"] = lines[i + 1]
        elif result["owner"] is None and label == "mailing address" and i > 0:
            # The owner line sits directly above the mailing address block
            result["owner"] = lines[i - 1]
        elif result["site_address"] is None and label == "site address" and i + 1 < len(lines):
            result["site_address"] = lines[i + 1]

    match = re.search(r"/parcel/basic/([A-Za-z0-9]+)", url or "")
    if match:
        result["parcel_id"] = match.group(1)
    return result


def parse_sales_rows(rows: Iterable[Sequence[str]]) -> List[TransactionReference]:
    """
    HCPA sales table -> deed references, most recent first.

    Columns: Book/Page, Instrument, Month, Year, Deed Type, Qualified,
    Vacant/Improved, Sale Price.
    """
    parsed = []
    for cells in rows:
        if len(cells) < 5:
            continue
        book_page, instrument, month, year, doc_type = (c.strip() for c in cells[:5])
        code = doc_type.upper()
        if code and code not in DEED_CODES:
            continue
        try:
            sort_key = (int(year), int(month or 0))
        except ValueError:
            continue
        record_date = f"{int(year):04d}-{int(month or 1):02d}"
        meta = {"record_date": record_date, "doc_type": code or None}

        bp = re.search(r"(\d+)\s*/\s*(\d+)", book_page)
        if bp:
            ref: TransactionReference = BookPage(book=bp.group(1), page=bp.group(2), **meta)
        elif re.fullmatch(r"\d{6,}", instrument):
            ref = InstrumentNumber(number=instrument, **meta)
        else:
            continue
        parsed.append((sort_key, ref))

    parsed.sort(key=lambda item: item[0], reverse=True)
    return [ref for _, ref in parsed]


def pick_document_id(rows: Sequence[Dict[str, Any]]) -> Optional[str]:
    """Prefer a deed row; otherwise the first row that has an ID."""
    with_id = [r for r in rows if r.get("ID")]
    for row in with_id:
        if "DEED" in str(row.get("DocType", "")).upper():
            return str(row["ID"])
    return str(with_id[0]["ID"]) if with_id else None


class HillsboroughAdapter(SiteAdapter):
    county = "Hillsborough"
    state = "FL"
    requires_captcha = False

    def __init__(self, ori_client: Optional[ORIClient] = None):
        self.ori = ori_client or ORIClient()

    async def resolve_identity(self, query: PropertyQuery, ctx: AdapterContext) -> PropertyIdentity:
        session = ctx.require_session()
        page = session.page
        street = query.raw_address.split(",")[0].strip()

        await session.goto(HCPA_BASE_URL, wait_until="networkidle")
        basic_tab = page.locator("li.tab:has-text('Basic Search')")
        if await basic_tab.count():
            await basic_tab.first.click()
        await page.locator("#basic input[data-bind*='value: address']").fill(street)
        await page.click("#basic button[data-bind*='click: search']")

        results = page.locator("#table-basic-results")
        try:
            await results.locator("tbody tr").first.wait_for(state="visible", timeout=15000)
        except Exception as e:
            raise IdentityResolutionError(f"HCPA has no parcel for {street!r}") from e

        log_lookup(source="HCPA", query=street, found=await results.locator("tbody tr").count(),
                   run_id=ctx.run_id)
        await results.locator("tbody tr:first-child td").first.click()
        details = page.locator("#details")
        await details.wait_for(state="visible", timeout=15000)

        card = parse_record_card(await details.inner_text(), page.url)
        ctx.note(f"HCPA record card: folio={card['folio']} owner={card['owner']}")
        return PropertyIdentity(
            parcel_id=card["parcel_id"] or card["folio"],
            owner_name=card["owner"],
            county=self.county,
            state=self.state,
            site_address=card["site_address"] or street,
        )

    async def find_transaction_references(self, identity: PropertyIdentity,
                                          ctx: AdapterContext) -> List[TransactionReference]:
        if not identity.parcel_id:
            ctx.note("no parcel id; skipping HCPA sales history")
            return []
        session = ctx.require_session()
        page = session.page
        await session.goto(HCPA_PARCEL_URL.format(parcel_id=identity.parcel_id), wait_until="networkidle")

        table = page.locator("table").filter(has_text="Official Record").first
        try:
            await table.wait_for(state="visible", timeout=15000)
        except Exception:
            ctx.note("HCPA sales history table not found")
            return []

        rows = await table.locator("tr").evaluate_all(ROWS_SCRIPT)
        references = parse_sales_rows(rows)
        log_lookup(source="HCPA", query=identity.parcel_id, found=len(rows),
                   kept=len(references), run_id=ctx.run_id)
        return references

    async def locate_document(self, reference: TransactionReference, ctx: AdapterContext) -> Optional[DeedAsset]:
        if isinstance(reference, DocumentId):
            doc_id: Optional[str] = reference.id
        elif isinstance(reference, BookPage):
            rows = await asyncio.to_thread(self.ori.search_by_book_page, reference.book, reference.page)
            doc_id = pick_document_id(rows)
        else:
            rows = await asyncio.to_thread(self.ori.search_by_instrument, reference.number)
            doc_id = pick_document_id(rows)

        if not doc_id:
            ctx.note(f"ORI has no document id for {reference}")
            return None
        return await self._download(doc_id, ctx)

    async def locate_document_by_owner_name(self, identity: PropertyIdentity,
                                            ctx: AdapterContext) -> Optional[DeedAsset]:
        if not identity.owner_name:
            ctx.note("no owner name; owner search skipped")
            return None
        owner = re.sub(r"[^\w\s&-]", " ", identity.owner_name).strip()
        rows = await asyncio.to_thread(self.ori.search_deeds_by_party, owner)

        # Deeds into the owner, newest first
        matches = [
            r for r in rows
            if r.get("ID") and any(NameMatcher.are_linked(owner, g) for g in party_names(r, "PartiesTwo"))
        ]
        matches.sort(key=lambda r: record_timestamp(r) or 0, reverse=True)
        log_lookup(source="ORI", query=owner, found=len(rows), kept=len(matches), run_id=ctx.run_id)
        if not matches:
            return None

        best = matches[0]
        ctx.note(f"owner search picked {best.get('DocType')} recorded {record_date_text(best)}")
        return await self._download(str(best["ID"]), ctx)

    async def _download(self, doc_id: str, ctx: AdapterContext) -> Optional[DeedAsset]:
        content = await asyncio.to_thread(self.ori.download_pdf, doc_id)
        if not content:
            ctx.note(f"ORI returned no image for document {doc_id}")
            return None
        logger.info("Fetched ORI document {doc} ({kb:.1f} KB)", doc=doc_id, kb=len(content) / 1024)
        return DeedAsset(
            source_url=self.ori.pdf_url(doc_id),
            buffers=(content,),
            declared_format="application/pdf",
        )
