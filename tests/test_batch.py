"""Tests for chunked batch mutation."""

from __future__ import annotations

import pytest

import converge.batch as batch_module
from cloud_mock import ProviderCallError, RecordingApplier, make_http_error
from converge.batch import (
    AclEntry,
    BatchResult,
    ChunkedBatchApplier,
    Tag,
    chunked,
    collect_pages,
    diff_tags,
    sync_tags,
    tags_from_map,
    tags_to_map,
)
from converge.errors import ErrorKind, ProviderError, ResourceNotFoundError
from converge.resource_kinds import (
    ACL_ENTRY_CHUNK_SIZE,
    ACL_ENTRY_EMPTY,
    ADD_ACL_ENTRY_ACTION,
    ADD_TAGS_ACTION,
    REMOVE_ACL_ENTRY_ACTION,
    REMOVE_TAGS_ACTION,
    TAG_CHUNK_SIZE,
    get_resource_kind,
)

ACL_ID = "acl-1"


def acl_entries(count: int) -> list[AclEntry]:
    return [AclEntry(entry=f"10.0.{i // 256}.{i % 256}/32", comment=f"rule {i}") for i in range(count)]


@pytest.fixture
def acl_applier() -> ChunkedBatchApplier:
    return ChunkedBatchApplier(ACL_ENTRY_CHUNK_SIZE, get_resource_kind("slb_acl").classifier())


class TestChunked:
    """Tests for the chunking helper."""

    def test_splits_in_order(self) -> None:
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_exact_multiple_has_no_empty_tail(self) -> None:
        assert list(chunked([1, 2, 3, 4], 2)) == [[1, 2], [3, 4]]

    def test_empty_input(self) -> None:
        assert list(chunked([], 3)) == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestApplyInChunks:
    """Tests for ChunkedBatchApplier.apply_in_chunks."""

    @pytest.mark.parametrize(
        ("count", "expected_calls"),
        [(1, 1), (50, 1), (51, 2), (120, 3), (150, 3)],
    )
    def test_number_of_calls(
        self, acl_applier: ChunkedBatchApplier, count: int, expected_calls: int
    ) -> None:
        """Test n items with chunk size k issue ceil(n/k) calls."""
        applier = RecordingApplier()

        result = acl_applier.apply_in_chunks(
            acl_entries(count), applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
        )

        assert applier.call_count == expected_calls
        assert result.chunks_applied == expected_calls
        assert result.items_applied == count
        assert all(len(chunk) <= ACL_ENTRY_CHUNK_SIZE for chunk in applier.chunks)

    def test_chunks_preserve_order_and_cover_all_items(
        self, acl_applier: ChunkedBatchApplier
    ) -> None:
        """Test concatenated chunks equal the input, without overlap."""
        entries = acl_entries(120)
        applier = RecordingApplier()

        acl_applier.apply_in_chunks(
            entries, applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
        )

        assert [len(chunk) for chunk in applier.chunks] == [50, 50, 20]
        assert applier.items == entries

    def test_empty_input_makes_no_calls(self, acl_applier: ChunkedBatchApplier) -> None:
        """Test an empty collection never reaches the provider."""
        applier = RecordingApplier()

        result = acl_applier.apply_in_chunks(
            [], applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
        )

        assert applier.call_count == 0
        assert result == BatchResult()
        assert result.total_chunks == 0

    def test_fatal_error_stops_later_chunks(self, acl_applier: ChunkedBatchApplier) -> None:
        """Test a failing chunk aborts the batch and earlier chunks stay applied."""
        cause = ProviderCallError("AclEntryConflict", "entry overlaps")
        applier = RecordingApplier(errors={1: cause})

        with pytest.raises(ProviderError) as exc_info:
            acl_applier.apply_in_chunks(
                acl_entries(120), applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
            )

        err = exc_info.value
        assert applier.call_count == 2
        assert err.resource_id == ACL_ID
        assert err.operation == ADD_ACL_ENTRY_ACTION
        assert err.__cause__ is cause
        assert "chunk 2/3 rejected after 1 chunk(s) were applied" in str(err)

    def test_transient_error_also_aborts(self, acl_applier: ChunkedBatchApplier) -> None:
        """Test busy errors are not retried by the applier."""
        applier = RecordingApplier(errors={0: ProviderCallError("SystemBusy")})

        with pytest.raises(ProviderError):
            acl_applier.apply_in_chunks(
                acl_entries(60), applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
            )

        assert applier.call_count == 1

    def test_http_error_aborts(self, acl_applier: ChunkedBatchApplier) -> None:
        """Test an azure-core error is wrapped with context."""
        applier = RecordingApplier(errors={0: make_http_error(400, "InvalidTag")})

        with pytest.raises(ProviderError) as exc_info:
            acl_applier.apply_in_chunks(
                acl_entries(3), applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
            )

        assert exc_info.value.kind == ErrorKind.PROVIDER_ERROR

    def test_already_wrapped_error_is_not_rewrapped(
        self, acl_applier: ChunkedBatchApplier
    ) -> None:
        """Test a collaborator raising a package error keeps its own context."""
        original = ResourceNotFoundError("lb-9", "DescribeLoadBalancerAttribute")
        applier = RecordingApplier(errors={0: original})

        with pytest.raises(ResourceNotFoundError) as exc_info:
            acl_applier.apply_in_chunks(
                acl_entries(3), applier, resource_id=ACL_ID, operation=ADD_ACL_ENTRY_ACTION
            )

        assert exc_info.value is original

    def test_already_empty_chunk_is_skipped(self, acl_applier: ChunkedBatchApplier) -> None:
        """Test removing entries that are already gone does not fail the batch."""
        applier = RecordingApplier(
            errors={0: ProviderCallError(ACL_ENTRY_EMPTY, "the acl has no entries")}
        )

        result = acl_applier.apply_in_chunks(
            acl_entries(120), applier, resource_id=ACL_ID, operation=REMOVE_ACL_ENTRY_ACTION
        )

        assert applier.call_count == 3
        assert result.chunks_skipped == 1
        assert result.chunks_applied == 2
        assert result.items_applied == 70
        assert result.total_chunks == 3

    def test_already_empty_only_swallowed_for_kinds_that_declare_it(self) -> None:
        """Test the same error from a kind without the signature aborts."""
        applier = ChunkedBatchApplier(5, get_resource_kind("slb").classifier())
        recorder = RecordingApplier(errors={0: ProviderCallError(ACL_ENTRY_EMPTY)})

        with pytest.raises(ProviderError):
            applier.apply_in_chunks(
                [1, 2, 3], recorder, resource_id="lb-1", operation="RemoveBackendServers"
            )

    def test_invalid_chunk_size(self) -> None:
        with pytest.raises(ValueError):
            ChunkedBatchApplier(0, get_resource_kind("slb").classifier())


class TestTags:
    """Tests for tag helpers and tag synchronization."""

    def test_wire_shapes(self) -> None:
        assert Tag("env", "prod").to_api() == {"TagKey": "env", "TagValue": "prod"}
        assert AclEntry("10.0.0.0/8").to_api() == {"entry": "10.0.0.0/8", "comment": ""}

    def test_tags_from_map_is_sorted(self) -> None:
        tags = tags_from_map({"b": "2", "a": 1})

        assert tags == [Tag("a", "1"), Tag("b", "2")]
        assert tags_to_map(tags) == {"a": "1", "b": "2"}

    def test_diff_tags(self) -> None:
        """Test a changed value is removed with its old value and re-created."""
        old = tags_from_map({"env": "dev", "team": "core", "stale": "yes"})
        new = tags_from_map({"env": "prod", "team": "core", "owner": "ops"})

        create, remove = diff_tags(old, new)

        assert create == [Tag("env", "prod"), Tag("owner", "ops")]
        assert remove == [Tag("env", "dev"), Tag("stale", "yes")]

    def test_diff_tags_no_change(self) -> None:
        tags = tags_from_map({"env": "prod"})

        assert diff_tags(tags, tags) == ([], [])

    def test_sync_tags_removes_before_adding(self) -> None:
        """Test removals are applied first, each side in chunks."""
        calls: list[tuple[str, list[Tag]]] = []
        applier = ChunkedBatchApplier(TAG_CHUNK_SIZE, get_resource_kind("slb").classifier())
        current = tags_from_map({f"old{i}": "x" for i in range(7)})
        desired = tags_from_map({f"new{i}": "y" for i in range(3)})

        removed, added = sync_tags(
            applier,
            current,
            desired,
            lambda chunk: calls.append((REMOVE_TAGS_ACTION, list(chunk))),
            lambda chunk: calls.append((ADD_TAGS_ACTION, list(chunk))),
            resource_id="lb-1",
        )

        assert [action for action, _ in calls] == [
            REMOVE_TAGS_ACTION,
            REMOVE_TAGS_ACTION,
            ADD_TAGS_ACTION,
        ]
        assert [len(chunk) for _, chunk in calls] == [5, 2, 3]
        assert removed.items_applied == 7
        assert added.items_applied == 3

    def test_sync_tags_failed_removal_skips_additions(self) -> None:
        """Test a rejected removal aborts before any tag is added."""
        added: list[Tag] = []
        applier = ChunkedBatchApplier(TAG_CHUNK_SIZE, get_resource_kind("slb").classifier())

        def remove(chunk: list[Tag]) -> None:
            raise ProviderCallError("Forbidden")

        with pytest.raises(ProviderError) as exc_info:
            sync_tags(
                applier,
                tags_from_map({"a": "1"}),
                tags_from_map({"b": "2"}),
                remove,
                added.extend,
                resource_id="lb-1",
            )

        assert exc_info.value.operation == REMOVE_TAGS_ACTION
        assert added == []


class TestCollectPages:
    """Tests for paged listing reads."""

    def test_reads_until_empty_page(self) -> None:
        pages = {1: ["a", "b"], 2: ["c", "d"], 3: ["e"], 4: []}
        requested: list[tuple[int, int]] = []

        def fetch(page_number: int, page_size: int) -> list[str]:
            requested.append((page_number, page_size))
            return pages.get(page_number, [])

        items = collect_pages(fetch, 2, resource_id="lb-1", operation="DescribeTags")

        assert items == ["a", "b", "c", "d", "e"]
        assert requested == [(1, 2), (2, 2), (3, 2), (4, 2)]

    def test_empty_listing(self) -> None:
        assert collect_pages(lambda n, s: [], 50, resource_id="lb-1", operation="DescribeTags") == []

    def test_page_error_is_wrapped(self) -> None:
        def fetch(page_number: int, page_size: int) -> list[str]:
            if page_number == 2:
                raise ProviderCallError("Throttling")
            return ["x"]

        with pytest.raises(ProviderError) as exc_info:
            collect_pages(fetch, 1, resource_id="lb-1", operation="DescribeTags")

        assert "page 2" in str(exc_info.value)

    def test_page_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a listing that never ends is cut off."""
        monkeypatch.setattr(batch_module, "MAX_PAGES", 3)
        calls: list[int] = []

        def fetch(page_number: int, page_size: int) -> list[str]:
            calls.append(page_number)
            return ["x"]

        with pytest.raises(ProviderError) as exc_info:
            collect_pages(fetch, 1, resource_id="lb-1", operation="DescribeTags")

        assert calls == [1, 2, 3]
        assert "did not end after 3 pages" in str(exc_info.value)

    def test_invalid_page_size(self) -> None:
        with pytest.raises(ValueError):
            collect_pages(lambda n, s: [], 0, resource_id="lb-1", operation="DescribeTags")
