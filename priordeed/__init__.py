"""Prior deed retrieval: address in, one PDF of the prior recorded deed out."""

from priordeed.models import (
    BookPage,
    DeedAsset,
    DocumentId,
    FailureStage,
    InstrumentNumber,
    PropertyIdentity,
    PropertyQuery,
    ScrapeResult,
)

__version__ = "0.1.0"

__all__ = [
    "BookPage",
    "DeedAsset",
    "DocumentId",
    "FailureStage",
    "InstrumentNumber",
    "PropertyIdentity",
    "PropertyQuery",
    "ScrapeResult",
]
