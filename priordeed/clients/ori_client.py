"""
Client for the Hillsborough County Clerk's Official Records Index (ORI)
public-access JSON API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from loguru import logger

from priordeed.utils.logging_utils import Timer, log_lookup


class ORIError(Exception):
    """The ORI API answered with something other than a result list or a PDF."""


class ORIClient:
    BASE_URL = "https://publicaccess.hillsclerk.com"
    LANDING_URL = f"{BASE_URL}/oripublicaccess/"
    SEARCH_URL = f"{BASE_URL}/Public/ORIUtilities/DocumentSearch/api/Search"
    PDF_URL = f"{BASE_URL}/Public/ORIUtilities/OverlayWatermark/api/Watermark"

    HEADERS = {
        "Content-Type": "application/json; charset=UTF-8",
        "Accept": "application/json, text/javascript, */*; q=0.01",
        "Origin": BASE_URL,
        "Referer": LANDING_URL,
        "X-Requested-With": "XMLHttpRequest",
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    }

    DEED_DOC_TYPES = [
        "(D) DEED",
        "(TAXDEED) TAX DEED",
        "(COR) CORRECTIVE",
    ]

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        self.session = session or requests.Session()
        self.timeout = timeout
        self._primed = False

    def _prime(self) -> None:
        # The search endpoint wants the landing page cookies
        if self._primed:
            return
        self._primed = True
        try:
            self.session.get(self.LANDING_URL, timeout=10)
        except requests.RequestException as e:
            logger.warning(f"Failed to initialize ORI session: {e}")

    def search_by_book_page(self, book: str, page: str) -> List[Dict[str, Any]]:
        payload = {
            "BookPageBegin": f"{book}/{page}",
            "BookPageEnd": f"{book}/{page}",
        }
        return self._execute_search(payload, query=f"{book}/{page}")

    def search_by_instrument(self, instrument: str) -> List[Dict[str, Any]]:
        # A DocType filter on instrument searches makes the API answer 400
        payload = {
            "RecordDateBegin": "01/01/1900",
            "RecordDateEnd": datetime.now().strftime("%m/%d/%Y"),
            "Instrument": instrument,
        }
        return self._execute_search(payload, query=instrument)

    def search_deeds_by_party(self, party_name: str, start_date: str = "01/01/1900") -> List[Dict[str, Any]]:
        """Deed records where ``party_name`` is either party, newest first."""
        payload = {
            "DocType": self.DEED_DOC_TYPES,
            "RecordDateBegin": start_date,
            "RecordDateEnd": datetime.now().strftime("%m/%d/%Y"),
            "Party": party_name,
        }
        rows = self._execute_search(payload, query=party_name)
        return sorted(rows, key=lambda r: record_timestamp(r) or 0, reverse=True)

    def _execute_search(self, payload: Dict[str, Any], query: str) -> List[Dict[str, Any]]:
        self._prime()
        with Timer() as t:
            try:
                response = self.session.post(self.SEARCH_URL, headers=self.HEADERS, json=payload, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                raise ORIError(f"ORI search failed for {query!r}: {e}") from e
        results = data.get("ResultList") or []
        log_lookup(source="ORI", query=query, found=len(results), duration_ms=t.elapsed_ms)
        return results

    def download_pdf(self, doc_id: str) -> Optional[bytes]:
        """Watermarked PDF for a clerk document ID, or None if the clerk has no image."""
        self._prime()
        url = f"{self.PDF_URL}/{quote(str(doc_id), safe='')}"
        headers = dict(self.HEADERS, Accept="application/pdf,*/*")
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ORIError(f"ORI download failed for {doc_id}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ORIError(f"ORI download for {doc_id} returned HTTP {response.status_code}")
        if not response.content:
            return None
        logger.debug("Downloaded ORI document {doc} ({size} bytes)", doc=doc_id, size=len(response.content))
        return response.content

    def pdf_url(self, doc_id: str) -> str:
        return f"{self.PDF_URL}/{quote(str(doc_id), safe='')}"


def record_timestamp(row: Dict[str, Any]) -> Optional[float]:
    """RecordDate comes back either as epoch seconds or 'MM/DD/YYYY hh:mm AM'."""
    raw = row.get("RecordDate")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str) and raw:
        try:
            parsed = datetime.strptime(raw.split()[0], "%m/%d/%Y").replace(tzinfo=timezone.utc)
        except ValueError:
            return None
        return parsed.timestamp()
    return None


def record_date_text(row: Dict[str, Any]) -> Optional[str]:
    ts = record_timestamp(row)
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def party_names(row: Dict[str, Any], field: str) -> List[str]:
    """PartiesOne (grantors) / PartiesTwo (grantees): list of names or {"Name": ...} dicts."""
    value = row.get(field) or []
    if not isinstance(value, list):
        value = [value]
    names = []
    for p in value:
        name = p.get("Name", "") if isinstance(p, dict) else str(p)
        if name.strip():
            names.append(name.strip())
    return names
