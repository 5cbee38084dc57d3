"""
Error taxonomy for prnotary.

Every fatal condition of a run is a subclass of NotaryError, so callers
can stop the run at the point of failure with a single except clause.

Two non-fatal outcomes are deliberately NOT exceptions:
- an approver that has not notarized the commit is a NotFound lookup
  result, recorded as absent in the approval report
- a required set that is not unanimously TRUSTED is an Outcome whose
  success flag is False
"""

from typing import Optional


class NotaryError(Exception):
    """Base class for all fatal prnotary errors."""


class InputError(NotaryError):
    """Raised when an argument or supplied credential is missing or malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class DirectoryError(NotaryError):
    """
    Raised when a credential directory call fails.

    For HTTP failures the method, URL, expected and actual status and the
    raw response body are kept. Transport failures (including timeouts)
    have no status.
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        expected_status: Optional[int] = None,
        status: Optional[int] = None,
        body: Optional[str] = None
    ):
        self.method = method
        self.url = url
        self.expected_status = expected_status
        self.status = status
        self.body = body
        super().__init__(message)


class ArtifactError(NotaryError):
    """Raised when no artifact descriptor can be extracted from a working copy."""


class NotarizationError(NotaryError):
    """Raised when the acting approver's notarization cannot be recorded."""

    def __init__(self, approver: str, message: str):
        self.approver = approver
        super().__init__(f"notarization error for approver {approver}: {message}")


class VerificationError(NotaryError):
    """Raised when the ledger cannot be queried for an approver."""

    def __init__(self, approver: str, message: str):
        self.approver = approver
        super().__init__(f"error verifying PR for required approver {approver}: {message}")


class LedgerIntegrityError(VerificationError):
    """
    Raised when the ledger returns a record that fails its own validity check.

    This is escalated above an ordinary missing notarization: the ledger
    result itself cannot be trusted.
    """

    def __init__(self, approver: str, message: str = 'ledger verification status is "false"'):
        super().__init__(approver, f"ledger might be compromised: {message}")
