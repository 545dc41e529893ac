"""Exception hierarchy for ingestion, persistence, and archival failures.

Duplicates and reconciliation mismatches are ordinary results and
therefore have no exception class here.
"""


class DocMatchError(Exception):
    """Base class for all errors raised by the package."""


class ConfigurationError(DocMatchError):
    """Raised when a configuration file or value cannot be used."""


class TransientExternalFailure(DocMatchError):
    """An external collaborator (analysis service, database) is unavailable.

    Callers retry these with exponential backoff and surface the error
    once attempts are exhausted so the source file stays in place.
    """


class MalformedDocument(DocMatchError):
    """The document cannot be mapped to a record for its channel.

    Args:
        reason_code: Short machine-readable classification stored in the
            audit trail (for example ``title_mismatch``).
        message: Human-readable detail.
    """

    def __init__(self, reason_code: str, message: str = "") -> None:
        self.reason_code = reason_code
        self.message = message or reason_code
        super().__init__(f"{reason_code}: {self.message}")


class PersistenceFailure(DocMatchError):
    """A multi-step write was rolled back."""


class ArchiveError(DocMatchError):
    """Moving a file into the archive failed."""
