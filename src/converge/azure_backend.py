"""Azure Resource Manager backend.

Thin collaborators over the ARM SDK that let the waiter and the batch
applier drive a real control plane:
- ArmDescriber: one synchronous read per call via ``resources.get_by_id``
- ArmTagWriter: one tag mutation per call via ``tags.begin_update_at_scope``
- ArmReconciler: composes both engines into tag synchronization and waits

No retries happen here: transient errors are absorbed by the waiter's poll
loop, and a failed tag write aborts the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import Tags, TagsPatchResource

from .batch import (
    BatchResult,
    ChunkedBatchApplier,
    Tag,
    diff_tags,
    sync_tags,
    tags_from_map,
    tags_to_map,
)
from .classifier import ErrorClass
from .clock import Clock
from .config import Config, ConfigurationError
from .errors import ErrorKind, wrap_error
from .models import ArmResourceResult, DescribeResult
from .resource_kinds import get_resource_kind
from .security import get_credential
from .waiter import EXISTS, ReadyPredicate, ReconciliationWaiter

logger = logging.getLogger(__name__)

# Works for resource groups and Microsoft.Resources types; other resource
# types need their provider's API version
DEFAULT_API_VERSION = "2021-04-01"

# Terminal ARM provisioning state for a successful write
SUCCEEDED = "Succeeded"

# Terminal ARM provisioning states a resource does not leave without a new write
TERMINAL_FAILURE_STATES = frozenset({"Failed", "Canceled"})

# Remote action reading the current tags, for diagnostics
GET_TAGS_ACTION = "Tags.GetAtScope"


class ArmDescriber:
    """Describe collaborator over ``resources.get_by_id``."""

    def __init__(
        self, client: ResourceManagementClient, api_version: str = DEFAULT_API_VERSION
    ) -> None:
        self._client = client
        self._api_version = api_version

    def describe(self, resource_id: str) -> dict[str, Any]:
        """Read one resource and return its raw ``GenericResource`` mapping."""
        resource = self._client.resources.get_by_id(
            resource_id=resource_id,
            api_version=self._api_version,
        )
        return resource.as_dict()


class ArmTagWriter:
    """Tag mutation collaborator for one ARM scope."""

    def __init__(self, client: ResourceManagementClient, scope: str) -> None:
        self._client = client
        self._scope = scope

    @property
    def scope(self) -> str:
        """Get the ARM scope whose tags are written."""
        return self._scope

    def current_tags(self) -> list[Tag]:
        """Read the tags currently set on the scope."""
        resource = self._client.tags.get_at_scope(self._scope)
        properties = getattr(resource, "properties", None)
        return tags_from_map(getattr(properties, "tags", None) or {})

    def merge(self, chunk: Sequence[Tag]) -> None:
        """Add or overwrite one chunk of tags."""
        self._patch("Merge", chunk)

    def delete(self, chunk: Sequence[Tag]) -> None:
        """Remove one chunk of tags."""
        self._patch("Delete", chunk)

    def _patch(self, operation: str, chunk: Sequence[Tag]) -> None:
        parameters = TagsPatchResource(
            operation=operation,
            properties=Tags(tags=tags_to_map(chunk)),
        )
        poller = self._client.tags.begin_update_at_scope(self._scope, parameters)
        poller.result()


@dataclass
class TagSyncResult:
    """Outcome of synchronizing one scope's tags."""

    scope: str
    created: list[Tag] = field(default_factory=list)
    removed: list[Tag] = field(default_factory=list)
    removed_batch: BatchResult = field(default_factory=BatchResult)
    added_batch: BatchResult = field(default_factory=BatchResult)
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        """Check if any tag had to change."""
        return bool(self.created or self.removed)


def tags_converged(desired: Mapping[str, str], removed_keys: set[str]) -> ReadyPredicate:
    """Build a predicate that holds once the described tags match ``desired``."""

    def ready(result: DescribeResult) -> bool:
        tags: dict[str, str] = getattr(result, "tags", {}) or {}
        if any(tags.get(key) != value for key, value in desired.items()):
            return False
        return not any(key in tags for key in removed_keys if key not in desired)

    return ready


class ArmReconciler:
    """Tag synchronization and provisioning waits against ARM."""

    def __init__(
        self,
        client: ResourceManagementClient,
        config: Config,
        clock: Clock | None = None,
        api_version: str = DEFAULT_API_VERSION,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: ARM client (authenticated).
            config: Validated configuration.
            clock: Time source for waits. Defaults to the system clock.
            api_version: API version used to describe resources.
        """
        self._client = client
        self._config = config
        self._kind = get_resource_kind("arm_resource")
        self._describer = ArmDescriber(client, api_version)
        self._waiter = ReconciliationWaiter(
            self._kind,
            self._describer.describe,
            config=config.waiter,
            clock=clock,
        )
        self._classifier = self._kind.classifier()
        self._applier = ChunkedBatchApplier(
            config.batch.tag_chunk_size,
            self._classifier,
        )

    @classmethod
    def from_config(cls, config: Config, api_version: str = DEFAULT_API_VERSION) -> ArmReconciler:
        """Build an authenticated reconciler from configuration.

        Raises:
            ConfigurationError: If no subscription id is configured.
            CredentialError: If credential secrets are present.
        """
        if not config.subscription_id:
            raise ConfigurationError("AZURE_SUBSCRIPTION_ID is required for the ARM backend")

        credential = get_credential(config.managed_identity_client_id)
        client = ResourceManagementClient(
            credential=credential,
            subscription_id=config.subscription_id,
        )
        return cls(client, config, api_version=api_version)

    @property
    def waiter(self) -> ReconciliationWaiter:
        """Get the waiter polling ARM resources."""
        return self._waiter

    def wait(
        self,
        resource_id: str,
        target: str = SUCCEEDED,
        timeout_seconds: float | None = None,
    ) -> ArmResourceResult | None:
        """Wait for a resource's provisioning state (or its deletion).

        A resource that settles in Failed or Canceled while another state is
        awaited fails the wait at once instead of running out the timeout.
        """
        result = self._waiter.wait_for(
            resource_id,
            target,
            timeout_seconds,
            operation="converge wait",
            failure_statuses=TERMINAL_FAILURE_STATES,
        )
        return result if isinstance(result, ArmResourceResult) else None

    def sync_tags(
        self,
        scope: str,
        desired: Mapping[str, str],
        timeout_seconds: float | None = None,
        dry_run: bool = False,
    ) -> TagSyncResult:
        """Bring the tags of ``scope`` to exactly ``desired``.

        Removals are applied first, then additions, each in chunks of the
        configured tag chunk size. The scope is then re-described until the
        new tags are observed.

        Args:
            scope: ARM id of a resource or resource group.
            desired: Full desired tag set.
            timeout_seconds: Convergence wait timeout.
            dry_run: Only compute the diff.

        Raises:
            ResourceNotFoundError: If the scope does not exist.
            ProviderError: If the current tags cannot be read, or a tag chunk
                is rejected (earlier chunks stay applied).
            WaitTimeoutError: If the new tags are not observed in time.
        """
        writer = ArmTagWriter(self._client, scope)
        try:
            current = writer.current_tags()
        except Exception as e:
            absent = self._classifier.classify(e) is ErrorClass.ABSENT
            kind = ErrorKind.NOT_FOUND if absent else ErrorKind.PROVIDER_ERROR
            raise wrap_error(e, scope, GET_TAGS_ACTION, kind=kind)
        create, remove = diff_tags(current, tags_from_map(desired))
        result = TagSyncResult(scope=scope, created=create, removed=remove, dry_run=dry_run)

        if dry_run or not result.changed:
            logger.info(
                "Tags already converged" if not result.changed else "Dry run: tag changes pending",
                extra={"scope": scope, "to_create": len(create), "to_remove": len(remove)},
            )
            return result

        result.removed_batch, result.added_batch = sync_tags(
            self._applier,
            current,
            tags_from_map(desired),
            writer.delete,
            writer.merge,
            resource_id=scope,
        )

        self._waiter.wait_for(
            scope,
            EXISTS,
            timeout_seconds,
            operation="converge tags apply",
            ready=tags_converged(dict(desired), {tag.key for tag in remove}),
        )

        return result
