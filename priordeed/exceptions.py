"""Error types shared by the orchestrator, adapters and collaborators."""


class PriorDeedError(Exception):
    """Base class for expected (non-defect) failures."""


class IdentityResolutionError(PriorDeedError):
    """Raised when an address cannot be resolved to a parcel/owner identity."""


class DocumentNotFound(PriorDeedError):
    """Raised by an adapter when a locate call finds nothing."""


class MaterializeError(PriorDeedError):
    """Raised when an asset cannot be turned into a valid PDF. Never retryable."""


class CaptchaSolverError(PriorDeedError):
    """Raised when a challenge could not be solved in time."""


class UnsupportedJurisdictionError(PriorDeedError):
    """Raised when no adapter is registered for a county/state pair."""


class JurisdictionLookupError(PriorDeedError):
    """Raised when the geocoder cannot place an address in a county."""


class AdapterContractError(TypeError):
    """A SiteAdapter returned malformed data. Programming defect, not a stage failure."""
