"""Reconciliation wait loop.

After a mutating call against an eventually-consistent control plane, the
caller polls the remote object until it reaches (or leaves) a target state:

1. Describe the object through the caller-supplied collaborator
2. Classify any error: absent, retryable or fatal
3. Compare identity and status (case-insensitive) to the target
4. Fail with a timeout once the deadline has passed
5. Sleep a fixed short interval and repeat

One generic waiter replaces a hand-written loop per resource kind: the kind
supplies the result model, id shape and error signatures, the caller supplies
the describe function and, optionally, an auxiliary readiness predicate.

The loop has two terminal states (success, timeout) and two early exits
(fatal error, terminal failure status). It only terminates on its own
through the deadline; an in-flight describe call cannot be cancelled, so a
wait may overrun its timeout by up to one describe latency plus one interval.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from .classifier import ErrorClass, ErrorClassifier
from .clock import Clock, SystemClock
from .config import WaiterConfig
from .errors import MalformedIdError, ProviderError, WaitTimeoutError, wrap_error
from .models import DELETED_STATUS, DescribeResult
from .resource_kinds import ResourceKind

logger = logging.getLogger(__name__)

# Target sentinels
DELETED = "Deleted"  # the object must stop existing
EXISTS = "Exists"  # any status, as soon as identity is confirmed

DescribeFn = Callable[[str], Any]
ReadyPredicate = Callable[[DescribeResult], bool]


def _is_deleted_target(target: str) -> bool:
    return target.lower() == DELETED.lower()


def _is_exists_target(target: str) -> bool:
    return target.lower() == EXISTS.lower()


def servers_detached(server_ids: Iterable[str]) -> ReadyPredicate:
    """Build a predicate that holds once none of ``server_ids`` is attached.

    Used for load balancers, which are not ready to delete while instances
    remain attached even though their top-level status already matches.
    """
    pending = frozenset(server_ids)

    def ready(result: DescribeResult) -> bool:
        attached: set[str] = getattr(result, "attached_server_ids", set())
        return not (attached & pending)

    return ready


class ReconciliationWaiter:
    """Polls one resource kind until a target condition or a deadline.

    Holds no state between waits: each call computes its own deadline and
    re-describes the object fresh on every iteration. Independent waits may
    run concurrently on separate waiter instances or the same one.
    """

    def __init__(
        self,
        kind: ResourceKind,
        describe: DescribeFn,
        config: WaiterConfig | None = None,
        clock: Clock | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        """Initialize the waiter.

        Args:
            kind: Resource kind being waited on.
            describe: Collaborator performing one synchronous read; returns
                the raw payload for ``kind.result_model``.
            config: Poll pacing. Defaults to WaiterConfig().
            clock: Time source. Defaults to the system clock.
            classifier: Error classifier. Defaults to the kind's classifier.
        """
        self._kind = kind
        self._describe = describe
        self._config = config or WaiterConfig()
        self._clock = clock or SystemClock()
        self._classifier = classifier or kind.classifier()

    @property
    def kind(self) -> ResourceKind:
        """Get the resource kind this waiter polls."""
        return self._kind

    @property
    def config(self) -> WaiterConfig:
        """Get the poll pacing configuration."""
        return self._config

    def wait_for(
        self,
        resource_id: str,
        target: str,
        timeout_seconds: float | None = None,
        *,
        operation: str | None = None,
        ready: ReadyPredicate | None = None,
        failure_statuses: Iterable[str] | None = None,
    ) -> DescribeResult | None:
        """Wait until the object reaches ``target``.

        Args:
            resource_id: Id of the remote object (composite ids are validated).
            target: A status value, DELETED or EXISTS.
            timeout_seconds: Deadline offset. Defaults to the configured timeout.
            operation: Calling operation name, for diagnostics.
            ready: Auxiliary predicate that must also hold for success.
            failure_statuses: Terminal statuses the object never leaves on its
                own. Observing one that is not ``target`` fails the wait at once.

        Returns:
            The matching result, or None when the object is gone (DELETED).

        Raises:
            WaitTimeoutError: If the deadline passes first.
            MalformedIdError: If the id does not match the kind's id shape.
            MalformedResponseError: If a describe payload fails validation.
            ProviderError: On the first fatal describe error or terminal
                failure status.
        """
        return self._poll(
            resource_id,
            target,
            timeout_seconds,
            operation=operation,
            ready=ready,
            absent_is_success=_is_deleted_target(target),
            failure_statuses=failure_statuses,
        )

    def wait_until_detached(
        self,
        resource_id: str,
        server_ids: Iterable[str],
        timeout_seconds: float | None = None,
        *,
        operation: str | None = None,
    ) -> DescribeResult | None:
        """Wait until none of ``server_ids`` is attached to the load balancer.

        A load balancer that no longer exists has nothing attached, so
        absence counts as success.
        """
        return self._poll(
            resource_id,
            EXISTS,
            timeout_seconds,
            operation=operation or "WaitUntilDetached",
            ready=servers_detached(server_ids),
            absent_is_success=True,
        )

    def _poll(
        self,
        resource_id: str,
        target: str,
        timeout_seconds: float | None,
        *,
        operation: str | None,
        ready: ReadyPredicate | None,
        absent_is_success: bool,
        failure_statuses: Iterable[str] | None = None,
    ) -> DescribeResult | None:
        operation = operation or f"WaitFor[{self._kind.name}]"

        # Reject malformed composite ids before any remote call
        self._kind.split_id(resource_id)

        timeout = (
            self._config.default_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        start = self._clock.now()
        deadline = start + timeout
        failures = {
            status.lower()
            for status in failure_statuses or ()
            if status.lower() != target.lower()
        }

        last_observed: str | None = None
        last_error: BaseException | None = None
        polls = 0

        while True:
            polls += 1
            result: DescribeResult | None = None
            outcome: ErrorClass | None = None

            try:
                payload = self._describe(resource_id)
            except Exception as e:
                outcome = self._classifier.classify(e)
                if outcome is ErrorClass.FATAL:
                    logger.error(
                        "Describe failed",
                        extra={
                            "resource_id": resource_id,
                            "operation": operation,
                            "action": self._kind.describe_action,
                            "error": str(e),
                        },
                    )
                    raise wrap_error(e, resource_id, self._kind.describe_action)

                last_error = e
                if outcome is ErrorClass.RETRYABLE:
                    logger.debug(
                        "Transient describe error, polling again",
                        extra={"resource_id": resource_id, "error": str(e)},
                    )
                else:
                    last_observed = None
            else:
                last_error = None
                result = self._kind.parse(payload, resource_id)
                if self._is_same_object(result, resource_id):
                    last_observed = result.status or EXISTS
                else:
                    # Empty or foreign identity: the object is not there
                    outcome = ErrorClass.ABSENT
                    last_observed = None
                    result = None

            if outcome is ErrorClass.ABSENT and absent_is_success:
                logger.info(
                    "Resource is gone",
                    extra={
                        "resource_id": resource_id,
                        "operation": operation,
                        "polls": polls,
                        "elapsed_seconds": self._clock.now() - start,
                    },
                )
                return None

            if result is not None and result.status and result.status.lower() in failures:
                logger.error(
                    "Resource reached a terminal failure status",
                    extra={
                        "resource_id": resource_id,
                        "operation": operation,
                        "target": target,
                        "status": result.status,
                        "polls": polls,
                    },
                )
                raise ProviderError(
                    resource_id,
                    operation,
                    detail=(
                        f"reached terminal status '{result.status}' "
                        f"while waiting for '{target}'"
                    ),
                )

            if result is not None and self._reached(result, target, ready):
                logger.info(
                    "Resource reached target",
                    extra={
                        "resource_id": resource_id,
                        "operation": operation,
                        "target": target,
                        "status": result.status,
                        "polls": polls,
                        "elapsed_seconds": self._clock.now() - start,
                    },
                )
                return None if _is_deleted_target(target) else result

            if self._clock.now() > deadline:
                logger.warning(
                    "Wait timed out",
                    extra={
                        "resource_id": resource_id,
                        "operation": operation,
                        "target": target,
                        "last_observed": last_observed,
                        "timeout_seconds": timeout,
                        "polls": polls,
                    },
                )
                raise WaitTimeoutError(
                    resource_id,
                    operation,
                    timeout_seconds=timeout,
                    last_observed=last_observed,
                    target=target,
                    cause=last_error,
                )

            self._clock.sleep(self._config.poll_interval_seconds)

    def _is_same_object(self, result: DescribeResult, resource_id: str) -> bool:
        """Check the snapshot describes the requested object.

        Ids are re-split on every call so a composite comparison never uses
        a parse from an earlier iteration.
        """
        if not result.exists:
            return False

        expected = self._kind.split_id(resource_id)
        try:
            observed = self._kind.split_id(result.resource_id)
        except MalformedIdError:
            return False

        if not result.identity_case_sensitive:
            expected = [part.lower() for part in expected]
            observed = [part.lower() for part in observed]
        return observed == expected

    @staticmethod
    def _reached(result: DescribeResult, target: str, ready: ReadyPredicate | None) -> bool:
        if _is_deleted_target(target):
            # Still present: only an explicit deleted state counts
            return result.status_matches(DELETED_STATUS)

        if not _is_exists_target(target) and not result.status_matches(target):
            return False

        return ready is None or ready(result)
