"""Remote error classification.

Decides whether an error returned by the control plane means the object is
absent, the call should simply be retried, or something is genuinely wrong.

The remote SDKs do not expose error codes uniformly: the ARM SDK raises
typed azure-core exceptions carrying an OData error code, other SDKs only
put the code in the message text. Classification therefore checks, in order:
1. Typed not-found exceptions
2. Structured error code (``err.error.code``, then ``err.code``)
3. HTTP status for throttling/unavailability
4. Message substring against the known signatures
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from azure.core.exceptions import HttpResponseError
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError

from .errors import ResourceNotFoundError

# HTTP statuses that always mean "try again later"
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 503})


class ErrorClass(str, Enum):
    """Outcome of classifying a remote error."""

    ABSENT = "absent"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorSignatures:
    """Known error codes/messages for one resource kind.

    Immutable so one instance can be shared by every waiter and applier.
    """

    not_found: frozenset[str] = frozenset()
    transient: frozenset[str] = frozenset()
    already_absent: frozenset[str] = frozenset()

    def merged_with(self, other: ErrorSignatures) -> ErrorSignatures:
        """Return the union of both signature sets."""
        return ErrorSignatures(
            not_found=self.not_found | other.not_found,
            transient=self.transient | other.transient,
            already_absent=self.already_absent | other.already_absent,
        )


def error_code(err: BaseException) -> str | None:
    """Extract a structured error code if the SDK exposes one."""
    odata = getattr(err, "error", None)
    code = getattr(odata, "code", None)
    if isinstance(code, str) and code:
        return code
    code = getattr(err, "code", None)
    if isinstance(code, str) and code:
        return code
    return None


def _matches(err: BaseException, signatures: frozenset[str]) -> bool:
    if not signatures:
        return False
    code = error_code(err)
    if code is not None and code in signatures:
        return True
    message = str(err)
    return any(signature in message for signature in signatures)


class ErrorClassifier:
    """Stateless classifier over one resource kind's error signatures."""

    def __init__(self, signatures: ErrorSignatures) -> None:
        self._signatures = signatures

    @property
    def signatures(self) -> ErrorSignatures:
        """Get the signatures this classifier matches against."""
        return self._signatures

    def classify(self, err: BaseException) -> ErrorClass:
        """Classify a remote error as absent, retryable or fatal."""
        if isinstance(err, (AzureResourceNotFoundError, ResourceNotFoundError)):
            return ErrorClass.ABSENT

        if _matches(err, self._signatures.not_found):
            return ErrorClass.ABSENT

        if isinstance(err, HttpResponseError) and err.status_code in RETRYABLE_STATUS_CODES:
            return ErrorClass.RETRYABLE

        if _matches(err, self._signatures.transient):
            return ErrorClass.RETRYABLE

        return ErrorClass.FATAL

    def is_already_absent(self, err: BaseException) -> bool:
        """Check if a deletion failed only because the items were already gone."""
        return _matches(err, self._signatures.already_absent)
