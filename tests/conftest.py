import io
from typing import List, Optional, Sequence

import fitz
import pytest
from PIL import Image

from priordeed.adapters.base import AdapterContext, SiteAdapter
from priordeed.exceptions import DocumentNotFound
from priordeed.models import DeedAsset, PropertyIdentity, PropertyQuery, TransactionReference

COLORS = ["red", "green", "blue", "yellow", "purple", "orange", "white"]


def make_png(width: int = 100, height: int = 50, color: str = "red", fmt: str = "PNG") -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format=fmt)
    return out.getvalue()


def make_tiff(pages: int, size=(80, 120)) -> bytes:
    frames = [Image.new("RGB", size, COLORS[i % len(COLORS)]) for i in range(pages)]
    out = io.BytesIO()
    frames[0].save(out, format="TIFF", save_all=True, append_images=frames[1:])
    return out.getvalue()


def make_pdf(pages: int = 1, size=(612, 792)) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=size[0], height=size[1])
        page.insert_text((72, 72), f"Deed page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


class FakeAdapter(SiteAdapter):
    """Scripted adapter: every stage answer comes from the constructor."""

    county = "Springfield"
    state = "XX"

    def __init__(
        self,
        identity: Optional[PropertyIdentity] = None,
        references: Sequence[TransactionReference] = (),
        documents: Optional[dict] = None,
        owner_asset: Optional[DeedAsset] = None,
        identity_error: Optional[BaseException] = None,
        references_error: Optional[BaseException] = None,
        owner_error: Optional[BaseException] = None,
    ):
        self.identity = identity or PropertyIdentity(
            parcel_id="P-1", owner_name="JANE DOE", county="Springfield", state="XX"
        )
        self.references = list(references)
        self.documents = documents or {}
        self.owner_asset = owner_asset
        self.identity_error = identity_error
        self.references_error = references_error
        self.owner_error = owner_error
        self.calls: List[str] = []

    async def resolve_identity(self, query: PropertyQuery, ctx: AdapterContext) -> PropertyIdentity:
        self.calls.append("identity")
        if self.identity_error:
            raise self.identity_error
        return self.identity

    async def find_transaction_references(self, identity, ctx):
        self.calls.append("references")
        if self.references_error:
            raise self.references_error
        return self.references

    async def locate_document(self, reference, ctx):
        self.calls.append(f"locate:{reference.token()}")
        answer = self.documents.get(reference.token())
        if isinstance(answer, BaseException):
            raise answer
        if answer == "not_found":
            raise DocumentNotFound("no image")
        return answer

    async def locate_document_by_owner_name(self, identity, ctx):
        self.calls.append("owner")
        if self.owner_error:
            raise self.owner_error
        return self.owner_asset


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def pdf_bytes():
    return make_pdf(2)


def break_tiff_ifd(data: bytes, frame: int, entry_count: bytes = b"\x01\x00") -> bytes:
    """Overwrite the entry count of one frame's IFD in a little-endian TIFF."""
    assert data[:2] == b"II"
    offset = int.from_bytes(data[4:8], "little")
    for _ in range(frame):
        count = int.from_bytes(data[offset:offset + 2], "little")
        offset = int.from_bytes(data[offset + 2 + 12 * count:offset + 6 + 12 * count], "little")
    assert offset, "TIFF has fewer frames than requested"
    return data[:offset] + entry_count + data[offset + 2:]
