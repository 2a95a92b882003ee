import base64
import re
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FailureStage(Enum):
    IDENTITY = "IDENTITY"        # Address could not be resolved to a jurisdiction
    TRANSACTION = "TRANSACTION"  # No usable references and owner-name fallback empty
    DOCUMENT = "DOCUMENT"        # References existed but no asset was located
    MATERIALIZE = "MATERIALIZE"  # Asset located but not convertible to a valid PDF


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", value).strip("_")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PropertyQuery(_Frozen):
    raw_address: str

    @field_validator("raw_address")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("address must not be blank")
        return v


class PropertyIdentity(_Frozen):
    """
    Parcel/owner identity for an address.
    Missing parcel_id or owner_name is tolerated; county and state are what
    route the rest of the pipeline.
    """
    parcel_id: Optional[str] = None
    owner_name: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None
    site_address: Optional[str] = None
    legal_description: Optional[str] = None

    @property
    def is_routable(self) -> bool:
        return bool(self.county and self.county.strip() and self.state and self.state.strip())


class _Reference(_Frozen):
    # Optional metadata read off the assessor/clerk row
    record_date: Optional[str] = None
    doc_type: Optional[str] = None
    grantor: Optional[str] = None
    grantee: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class DocumentId(_Reference):
    kind: Literal["document_id"] = "document_id"
    id: str = Field(min_length=1)

    def token(self) -> str:
        return _slug(self.id)

    def __str__(self) -> str:
        return f"DocumentId({self.id})"


class BookPage(_Reference):
    kind: Literal["book_page"] = "book_page"
    book: str = Field(min_length=1)
    page: str = Field(min_length=1)

    def token(self) -> str:
        return f"B{_slug(self.book)}_P{_slug(self.page)}"

    def __str__(self) -> str:
        return f"BookPage({self.book}/{self.page})"


class InstrumentNumber(_Reference):
    kind: Literal["instrument"] = "instrument"
    number: str = Field(min_length=1)

    def token(self) -> str:
        return _slug(self.number)

    def __str__(self) -> str:
        return f"InstrumentNumber({self.number})"


TransactionReference = Annotated[
    Union[DocumentId, BookPage, InstrumentNumber],
    Field(discriminator="kind"),
]
REFERENCE_TYPES = (DocumentId, BookPage, InstrumentNumber)


class DeedAsset(_Frozen):
    """
    Raw document bytes as returned by a recorder site.
    One buffer for a PDF or single image, N ordered buffers for an N-page
    raster document (page order).
    """
    source_url: Optional[str] = None
    buffers: Tuple[bytes, ...] = ()
    declared_format: Optional[str] = None

    @field_validator("buffers", mode="before")
    @classmethod
    def _as_tuple(cls, v):
        if isinstance(v, (bytes, bytearray)):
            return (bytes(v),)
        return tuple(bytes(b) for b in v)

    @property
    def is_empty(self) -> bool:
        return not any(len(b) for b in self.buffers)

    @property
    def total_size(self) -> int:
        return sum(len(b) for b in self.buffers)


class ScrapeResult(_Frozen):
    success: bool
    pdf_bytes: Optional[bytes] = None
    filename: Optional[str] = None
    failure_stage: Optional[FailureStage] = None
    error: Optional[str] = None
    elapsed_millis: int = 0
    diagnostics: Tuple[str, ...] = ()

    @classmethod
    def succeeded(cls, pdf_bytes: bytes, filename: str, elapsed_millis: int,
                  diagnostics: Optional[List[str]] = None) -> "ScrapeResult":
        return cls(
            success=True,
            pdf_bytes=pdf_bytes,
            filename=filename,
            elapsed_millis=elapsed_millis,
            diagnostics=tuple(diagnostics or ()),
        )

    @classmethod
    def failed(cls, stage: FailureStage, error: str, elapsed_millis: int,
               diagnostics: Optional[List[str]] = None) -> "ScrapeResult":
        return cls(
            success=False,
            failure_stage=stage,
            error=error,
            elapsed_millis=elapsed_millis,
            diagnostics=tuple(diagnostics or ()),
        )

    @property
    def file_size_bytes(self) -> int:
        return len(self.pdf_bytes) if self.pdf_bytes else 0

    def to_payload(self) -> dict:
        """JSON-serializable response body."""
        payload = {
            "success": self.success,
            "fileSizeBytes": self.file_size_bytes,
            "elapsedMillis": self.elapsed_millis,
        }
        if self.success:
            payload["pdfBase64"] = base64.b64encode(self.pdf_bytes or b"").decode("ascii")
            payload["filename"] = self.filename
        else:
            payload["failureStage"] = self.failure_stage.value if self.failure_stage else None
            payload["error"] = self.error
        return payload
