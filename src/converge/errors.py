"""Error taxonomy for reconciliation waits and chunked batch mutations.

Every error that leaves this package is a ConvergeError carrying:
- the offending resource id
- the remote operation name
- a fixed classification tag (ErrorKind)

so the resource lifecycle layer can handle them uniformly and a human can
read the error string alone and tell which resource, which operation, and
whether it was "not found", "timed out" or "failed".
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification tag attached to every surfaced error."""

    NOT_FOUND = "NotFound"
    TIMEOUT = "Timeout"
    PROVIDER_ERROR = "ProviderError"
    MALFORMED_RESPONSE = "MalformedResponse"
    MALFORMED_ID = "MalformedId"


class ConvergeError(Exception):
    """Base error with resource/operation context."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR
    verb: str = "failed"

    def __init__(
        self,
        resource_id: str,
        operation: str,
        detail: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.operation = operation
        self.detail = detail
        self.cause = cause
        super().__init__(self._format())

    def _format(self) -> str:
        message = f"[{self.kind.value}] {self.operation} on resource '{self.resource_id}' {self.verb}"
        if self.detail:
            message = f"{message}: {self.detail}"
        if self.cause is not None:
            message = f"{message} (cause: {type(self.cause).__name__}: {self.cause})"
        return message


class ResourceNotFoundError(ConvergeError):
    """The remote object does not exist."""

    kind = ErrorKind.NOT_FOUND
    verb = "was not found"


class ProviderError(ConvergeError):
    """Unclassified remote failure. Never retried."""

    kind = ErrorKind.PROVIDER_ERROR
    verb = "failed"


class MalformedResponseError(ConvergeError):
    """A describe payload did not validate against its typed result model."""

    kind = ErrorKind.MALFORMED_RESPONSE
    verb = "returned a malformed response"


class MalformedIdError(ConvergeError, ValueError):
    """A composite resource id did not split into the expected parts."""

    kind = ErrorKind.MALFORMED_ID
    verb = "has a malformed id"


class WaitTimeoutError(ConvergeError):
    """The deadline passed before the target condition was reached."""

    kind = ErrorKind.TIMEOUT
    verb = "timed out"

    def __init__(
        self,
        resource_id: str,
        operation: str,
        timeout_seconds: float,
        last_observed: str | None,
        target: str,
        cause: BaseException | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.last_observed = last_observed
        self.target = target
        detail = (
            f"waited {timeout_seconds:g}s for '{target}', "
            f"last observed '{last_observed if last_observed is not None else 'absent'}'"
        )
        super().__init__(resource_id, operation, detail=detail, cause=cause)


_KIND_TO_ERROR: dict[ErrorKind, type[ConvergeError]] = {
    ErrorKind.NOT_FOUND: ResourceNotFoundError,
    ErrorKind.PROVIDER_ERROR: ProviderError,
    ErrorKind.MALFORMED_RESPONSE: MalformedResponseError,
    ErrorKind.MALFORMED_ID: MalformedIdError,
}


def wrap_error(
    err: BaseException,
    resource_id: str,
    operation: str,
    kind: ErrorKind = ErrorKind.PROVIDER_ERROR,
    detail: str | None = None,
) -> ConvergeError:
    """Attach resource id, operation name and classification tag to an error.

    Already-wrapped errors are returned unchanged so context is never
    stacked twice when errors bubble through nested helpers.

    Args:
        err: The error raised by a remote call or a parser.
        resource_id: Id of the offending remote object.
        operation: Remote action name (e.g. "DescribeLoadBalancerAttribute").
        kind: Classification tag. Timeout is not accepted here; timeouts are
            raised directly by the waiter with their diagnostic fields.
        detail: Optional extra message.

    Returns:
        A ConvergeError whose __cause__ is the original error.
    """
    if isinstance(err, ConvergeError):
        return err

    try:
        error_cls = _KIND_TO_ERROR[kind]
    except KeyError:
        raise ValueError(f"Cannot wrap an error as {kind.value}") from None

    wrapped = error_cls(resource_id, operation, detail=detail, cause=err)
    wrapped.__cause__ = err
    return wrapped
