"""Chunked batch mutation.

Large collections (access-list entries, tags) exceed what one provider call
accepts. They are split into contiguous, order-preserving chunks of at most
``chunk_size`` items and applied strictly in sequence:
- sequential application keeps order-sensitive side effects predictable
  (access-list rules) and does not amplify rate limits
- an "already empty" error on a chunk is swallowed (deleting entries that
  are already gone is not a failure)
- any other error aborts the whole batch immediately

Chunks already applied are NOT rolled back: partial application is an
accepted outcome, and the caller's subsequent reconciliation read reveals
the true resulting state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from .classifier import ErrorClassifier
from .errors import ProviderError, wrap_error
from .resource_kinds import ADD_TAGS_ACTION, REMOVE_TAGS_ACTION

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Hard stop for paged reads, in case a provider never returns an empty page
MAX_PAGES = 1000


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield contiguous, non-overlapping slices of at most ``size`` items.

    The last slice is truncated, never padded.

    Raises:
        ValueError: If size is less than 1.
    """
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass
class BatchResult:
    """Outcome of one chunked batch application."""

    chunks_applied: int = 0
    items_applied: int = 0
    chunks_skipped: int = 0  # already-absent deletions

    @property
    def total_chunks(self) -> int:
        """Number of chunks that were attempted without aborting."""
        return self.chunks_applied + self.chunks_skipped


class ChunkedBatchApplier:
    """Applies mutation items in bounded-size chunks, one call per chunk."""

    def __init__(self, chunk_size: int, classifier: ErrorClassifier) -> None:
        """Initialize the applier.

        Args:
            chunk_size: Provider-imposed maximum items per call.
            classifier: Classifier used to spot "already absent" errors.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self._chunk_size = chunk_size
        self._classifier = classifier

    @property
    def chunk_size(self) -> int:
        """Get the maximum items per call."""
        return self._chunk_size

    def apply_in_chunks(
        self,
        items: Sequence[T],
        apply_fn: Callable[[Sequence[T]], Any],
        *,
        resource_id: str,
        operation: str,
    ) -> BatchResult:
        """Apply ``items`` through ``apply_fn`` in sequential chunks.

        An empty collection issues no call at all.

        Args:
            items: Ordered mutation items.
            apply_fn: Collaborator performing one remote call for a chunk.
            resource_id: Target object id, for error context.
            operation: Remote action name, for error context.

        Returns:
            BatchResult with applied/skipped counts.

        Raises:
            ProviderError: On the first chunk failing with anything other
                than an "already absent" error. Later chunks are not applied.
        """
        result = BatchResult()
        if not items:
            return result

        total = -(-len(items) // self._chunk_size)

        for index, chunk in enumerate(chunked(items, self._chunk_size)):
            try:
                apply_fn(chunk)
            except Exception as e:
                if self._classifier.is_already_absent(e):
                    logger.info(
                        "Chunk already absent, continuing",
                        extra={
                            "resource_id": resource_id,
                            "operation": operation,
                            "chunk_index": index,
                            "chunk_items": len(chunk),
                        },
                    )
                    result.chunks_skipped += 1
                    continue

                logger.error(
                    "Chunk failed, aborting batch",
                    extra={
                        "resource_id": resource_id,
                        "operation": operation,
                        "chunk_index": index,
                        "chunks_total": total,
                        "chunks_applied": result.chunks_applied,
                        "error": str(e),
                    },
                )
                raise wrap_error(
                    e,
                    resource_id,
                    operation,
                    detail=(
                        f"chunk {index + 1}/{total} rejected after "
                        f"{result.chunks_applied} chunk(s) were applied"
                    ),
                )

            result.chunks_applied += 1
            result.items_applied += len(chunk)

        logger.debug(
            "Batch applied",
            extra={
                "resource_id": resource_id,
                "operation": operation,
                "chunks_applied": result.chunks_applied,
                "chunks_skipped": result.chunks_skipped,
                "items_applied": result.items_applied,
            },
        )
        return result


# =============================================================================
# Tags and access-list entries
# =============================================================================


@dataclass(frozen=True)
class Tag:
    """One tag key/value pair."""

    key: str
    value: str

    def to_api(self) -> dict[str, str]:
        """Convert to the provider's tag wire shape."""
        return {"TagKey": self.key, "TagValue": self.value}


@dataclass(frozen=True)
class AclEntry:
    """One access-control entry (CIDR plus optional comment)."""

    entry: str
    comment: str = ""

    def to_api(self) -> dict[str, str]:
        """Convert to the provider's access-list entry wire shape."""
        return {"entry": self.entry, "comment": self.comment}


def tags_from_map(tags: Mapping[str, Any]) -> list[Tag]:
    """Build tags from a key/value mapping, sorted by key."""
    return [Tag(key=key, value=str(value)) for key, value in sorted(tags.items())]


def tags_to_map(tags: Sequence[Tag]) -> dict[str, str]:
    """Flatten tags into a key/value mapping (last value wins)."""
    return {tag.key: tag.value for tag in tags}


def diff_tags(old: Sequence[Tag], new: Sequence[Tag]) -> tuple[list[Tag], list[Tag]]:
    """Compute which tags to create and which to remove.

    A tag whose value changed appears in both lists: it is removed with its
    old value, then re-created with the new one.

    Returns:
        (create, remove)
    """
    desired = tags_to_map(new)
    remove = [tag for tag in old if desired.get(tag.key) != tag.value]
    current = tags_to_map(old)
    create = [tag for tag in new if current.get(tag.key) != tag.value]
    return create, remove


def sync_tags(
    applier: ChunkedBatchApplier,
    current: Sequence[Tag],
    desired: Sequence[Tag],
    remove_fn: Callable[[Sequence[Tag]], Any],
    add_fn: Callable[[Sequence[Tag]], Any],
    *,
    resource_id: str,
) -> tuple[BatchResult, BatchResult]:
    """Bring a resource's tags from ``current`` to ``desired``.

    Removals are applied before additions so a changed value never ends up
    removed after being written.

    Returns:
        (removed, added) batch results.
    """
    create, remove = diff_tags(current, desired)

    removed = applier.apply_in_chunks(
        remove, remove_fn, resource_id=resource_id, operation=REMOVE_TAGS_ACTION
    )
    added = applier.apply_in_chunks(
        create, add_fn, resource_id=resource_id, operation=ADD_TAGS_ACTION
    )

    logger.info(
        "Tags synchronized",
        extra={
            "resource_id": resource_id,
            "tags_removed": removed.items_applied,
            "tags_added": added.items_applied,
        },
    )
    return removed, added


def collect_pages(
    fetch_page: Callable[[int, int], Sequence[T]],
    page_size: int,
    *,
    resource_id: str,
    operation: str,
) -> list[T]:
    """Read a paged listing, starting at page 1, until an empty page.

    Raises:
        ProviderError: If a page read fails or the page limit is exceeded.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be at least 1, got {page_size}")

    collected: list[T] = []
    for page_number in range(1, MAX_PAGES + 1):
        try:
            page = fetch_page(page_number, page_size)
        except Exception as e:
            raise wrap_error(e, resource_id, operation, detail=f"page {page_number}")

        if not page:
            return collected
        collected.extend(page)

    raise ProviderError(
        resource_id,
        operation,
        detail=f"listing did not end after {MAX_PAGES} pages of {page_size}",
    )
