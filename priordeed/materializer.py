"""
Document materialization.

Turns whatever a recorder site handed back (a PDF, a single raster image,
a multi-page TIFF, or an ordered list of page tiles) into one canonical,
paginated PDF. Format is sniffed from the leading bytes; declared content
types are ignored because county sites routinely mislabel them.

Pure byte transformation: no I/O, no shared state.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import fitz
from loguru import logger
from PIL import Image

from priordeed.exceptions import MaterializeError
from priordeed.models import DeedAsset

PDF_SIGNATURE = b"%PDF"
TIFF_SIGNATURES = (b"II", b"MM")

# Letter size at 72 DPI
LETTER_SIZE = (612.0, 792.0)

# Modes PNG can store as-is; everything else goes through RGB
_PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I;16"}


@dataclass(frozen=True, slots=True)
class RasterPage:
    png: bytes
    width: float
    height: float


def sniff_format(buffer: bytes) -> str:
    """Return 'pdf', 'tiff' or 'raster' from the leading bytes."""
    head = buffer[:4]
    if head.startswith(PDF_SIGNATURE):
        return "pdf"
    if head[:2] in TIFF_SIGNATURES:
        return "tiff"
    return "raster"


def _encode_png(frame: Image.Image) -> bytes:
    if frame.mode not in _PNG_MODES:
        frame = frame.convert("RGB")
    out = io.BytesIO()
    frame.save(out, format="PNG")
    return out.getvalue()


def _fit_within(width: float, height: float, bound: Tuple[float, float]) -> Tuple[float, float]:
    max_w, max_h = bound
    if width <= max_w and height <= max_h:
        return width, height
    scale = min(max_w / width, max_h / height)
    return width * scale, height * scale


class DocumentMaterializer:
    """Normalizes a DeedAsset into a single multi-page PDF byte buffer."""

    def __init__(self, max_page_size: Tuple[float, float] = LETTER_SIZE):
        self.max_page_size = max_page_size

    def materialize(self, asset: DeedAsset) -> bytes:
        buffers = [b for b in asset.buffers if b]
        if not buffers:
            raise MaterializeError("no asset data")

        first_kind = sniff_format(buffers[0])
        logger.debug(
            "Materializing {count} buffer(s), first={kind}, declared={declared}",
            count=len(buffers), kind=first_kind, declared=asset.declared_format,
        )

        if first_kind == "pdf" and len(buffers) == 1:
            self.validate_pdf(buffers[0])
            return buffers[0]

        doc = fitz.open()
        try:
            page_number = 0
            for index, buffer in enumerate(buffers):
                kind = sniff_format(buffer)
                if kind == "pdf":
                    self.validate_pdf(buffer)
                    with fitz.open(stream=buffer, filetype="pdf") as src:
                        doc.insert_pdf(src)
                        page_number += src.page_count
                    continue

                if kind == "tiff":
                    pages = self.extract_tiff_pages(buffer, first_page=page_number + 1)
                else:
                    pages = [self.decode_raster(buffer, page_number=page_number + 1)]

                for page in pages:
                    self._add_page(doc, page)
                page_number += len(pages)
                logger.debug("Buffer {idx}: {kind} -> {n} page(s)", idx=index, kind=kind, n=len(pages))

            if doc.page_count == 0:
                raise MaterializeError("corrupt asset: no pages decoded")

            try:
                pdf_bytes = doc.tobytes(garbage=3, deflate=True)
            except Exception as e:
                raise MaterializeError(f"assembly error: {e}") from e
        finally:
            doc.close()

        logger.info(
            "Materialized {pages} page(s), {size:.1f} KB",
            pages=page_number, size=len(pdf_bytes) / 1024,
        )
        return pdf_bytes

    def validate_pdf(self, data: bytes) -> None:
        """Reject truncated or unreadable PDFs instead of passing them through."""
        if b"%%EOF" not in data[-2048:]:
            raise MaterializeError("truncated PDF: missing %%EOF trailer")
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.page_count < 1:
                    raise MaterializeError("corrupt asset: PDF has no pages")
                if doc.is_repaired:
                    logger.warning("PDF cross-reference table was repaired on open")
        except MaterializeError:
            raise
        except Exception as e:
            raise MaterializeError(f"corrupt asset: unreadable PDF ({e})") from e

    def extract_tiff_pages(self, data: bytes, first_page: int = 1) -> List[RasterPage]:
        """
        Decode frames 0, 1, 2, ... until one fails.

        TIFF containers in the wild do not report a trustworthy page count,
        so a decode failure after the first frame means "no more pages".
        A failure on frame 0 means the asset itself is corrupt.
        """
        pages: List[RasterPage] = []
        try:
            img = Image.open(io.BytesIO(data))
        except Exception as e:
            raise MaterializeError(f"corrupt asset: TIFF page {first_page} unreadable ({e})") from e

        with img:
            index = 0
            while True:
                try:
                    img.seek(index)
                    frame = img.copy()
                    png = _encode_png(frame)
                except Exception as e:
                    if index == 0:
                        raise MaterializeError(
                            f"corrupt asset: TIFF page {first_page} unreadable ({e})"
                        ) from e
                    logger.debug("TIFF ends after {n} frame(s)", n=index)
                    break
                pages.append(RasterPage(png=png, width=float(frame.width), height=float(frame.height)))
                index += 1
        return pages

    def decode_raster(self, data: bytes, page_number: int = 1) -> RasterPage:
        """Decode one PNG/JPEG/GIF/... tile, clamped to the print bound."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                png = _encode_png(img)
                width, height = float(img.width), float(img.height)
        except Exception as e:
            raise MaterializeError(f"corrupt asset: page {page_number} could not be decoded ({e})") from e

        fitted = _fit_within(width, height, self.max_page_size)
        if fitted != (width, height):
            logger.debug(
                "Page {n}: {w}x{h} px scaled to {fw:.0f}x{fh:.0f} pt",
                n=page_number, w=int(width), h=int(height), fw=fitted[0], fh=fitted[1],
            )
        return RasterPage(png=png, width=fitted[0], height=fitted[1])

    @staticmethod
    def _add_page(doc: "fitz.Document", page: RasterPage) -> None:
        try:
            pdf_page = doc.new_page(width=page.width, height=page.height)
            pdf_page.insert_image(pdf_page.rect, stream=page.png)
        except Exception as e:
            raise MaterializeError(f"assembly error: {e}") from e


def page_count(pdf_bytes: bytes) -> int:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return doc.page_count


def page_sizes(pdf_bytes: bytes) -> List[Tuple[float, float]]:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [(page.rect.width, page.rect.height) for page in doc]


def materialize_buffers(buffers: Iterable[bytes] | Sequence[bytes], source_url: str | None = None) -> bytes:
    """Shortcut for callers holding raw buffers instead of a DeedAsset."""
    return DocumentMaterializer().materialize(DeedAsset(source_url=source_url, buffers=tuple(buffers)))
