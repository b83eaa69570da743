"""Tests for remote error classification."""

from __future__ import annotations

import pytest
from azure.core.exceptions import HttpResponseError
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError

from cloud_mock import ProviderCallError, make_http_error
from converge.classifier import ErrorClass, ErrorClassifier, ErrorSignatures, error_code
from converge.errors import ResourceNotFoundError
from converge.resource_kinds import (
    ACL_ENTRY_EMPTY,
    LOAD_BALANCER_NOT_FOUND,
    SLB_BUSY,
    get_resource_kind,
)


@pytest.fixture
def slb_classifier() -> ErrorClassifier:
    return get_resource_kind("slb").classifier()


class TestErrorCode:
    """Tests for structured error code extraction."""

    def test_odata_error_code(self) -> None:
        assert error_code(make_http_error(404, "ResourceGroupNotFound")) == "ResourceGroupNotFound"

    def test_plain_code_attribute(self) -> None:
        assert error_code(ProviderCallError("SystemBusy")) == "SystemBusy"

    def test_no_code(self) -> None:
        assert error_code(RuntimeError("boom")) is None
        assert error_code(make_http_error(500)) is None


class TestClassify:
    """Tests for ErrorClassifier.classify."""

    def test_not_found_code_is_absent(self, slb_classifier: ErrorClassifier) -> None:
        err = ProviderCallError(LOAD_BALANCER_NOT_FOUND, "The specified load balancer does not exist")

        assert slb_classifier.classify(err) is ErrorClass.ABSENT

    def test_not_found_in_message_is_absent(self, slb_classifier: ErrorClassifier) -> None:
        """Test SDKs that only put the code in the message text."""
        err = RuntimeError(f"SDK.ServerError\nErrorCode: {LOAD_BALANCER_NOT_FOUND}\nRequestId: abc")

        assert slb_classifier.classify(err) is ErrorClass.ABSENT

    def test_typed_not_found_is_absent(self, slb_classifier: ErrorClassifier) -> None:
        assert slb_classifier.classify(AzureResourceNotFoundError(message="gone")) is ErrorClass.ABSENT
        assert slb_classifier.classify(ResourceNotFoundError("lb-1", "Describe")) is ErrorClass.ABSENT

    @pytest.mark.parametrize("code", sorted(SLB_BUSY))
    def test_busy_codes_are_retryable(self, slb_classifier: ErrorClassifier, code: str) -> None:
        assert slb_classifier.classify(ProviderCallError(code)) is ErrorClass.RETRYABLE

    @pytest.mark.parametrize("code", ["Throttling", "ServiceUnavailable", "TooManyRequests"])
    def test_common_transient_codes_are_retryable(
        self, slb_classifier: ErrorClassifier, code: str
    ) -> None:
        assert slb_classifier.classify(ProviderCallError(code)) is ErrorClass.RETRYABLE

    @pytest.mark.parametrize("status", [429, 503])
    def test_retryable_http_status(self, slb_classifier: ErrorClassifier, status: int) -> None:
        assert slb_classifier.classify(make_http_error(status)) is ErrorClass.RETRYABLE

    @pytest.mark.parametrize("status", [400, 403, 409, 500])
    def test_other_http_status_is_fatal(self, slb_classifier: ErrorClassifier, status: int) -> None:
        assert slb_classifier.classify(make_http_error(status)) is ErrorClass.FATAL

    def test_unknown_error_is_fatal(self, slb_classifier: ErrorClassifier) -> None:
        assert slb_classifier.classify(ProviderCallError("Forbidden.RAM")) is ErrorClass.FATAL
        assert slb_classifier.classify(ValueError("bad")) is ErrorClass.FATAL

    def test_not_found_wins_over_status(self) -> None:
        """Test a throttled-looking response carrying a not-found code is absent."""
        classifier = get_resource_kind("arm_resource").classifier()
        err = make_http_error(503, "ResourceGroupNotFound")

        assert classifier.classify(err) is ErrorClass.ABSENT

    def test_arm_transient_code(self) -> None:
        classifier = get_resource_kind("arm_resource").classifier()
        err = make_http_error(409, "AnotherOperationInProgress")

        assert classifier.classify(err) is ErrorClass.RETRYABLE

    def test_signatures_are_per_kind(self) -> None:
        """Test one kind's not-found code is fatal for another kind."""
        rule_classifier = get_resource_kind("slb_rule").classifier()

        assert rule_classifier.classify(ProviderCallError(LOAD_BALANCER_NOT_FOUND)) is ErrorClass.FATAL

    def test_classifier_is_stateless(self, slb_classifier: ErrorClassifier) -> None:
        err = ProviderCallError("SystemBusy")

        assert [slb_classifier.classify(err) for _ in range(3)] == [ErrorClass.RETRYABLE] * 3

    def test_http_response_error_subclass_without_status(
        self, slb_classifier: ErrorClassifier
    ) -> None:
        assert slb_classifier.classify(HttpResponseError(message="no response")) is ErrorClass.FATAL


class TestAlreadyAbsent:
    """Tests for ErrorClassifier.is_already_absent."""

    def test_acl_entry_empty(self) -> None:
        classifier = get_resource_kind("slb_acl").classifier()

        assert classifier.is_already_absent(ProviderCallError(ACL_ENTRY_EMPTY))
        assert not classifier.is_already_absent(ProviderCallError("AclNotExist"))

    def test_kind_without_signature(self, slb_classifier: ErrorClassifier) -> None:
        assert not slb_classifier.is_already_absent(ProviderCallError(ACL_ENTRY_EMPTY))


class TestErrorSignatures:
    """Tests for signature merging."""

    def test_merged_with(self) -> None:
        first = ErrorSignatures(not_found=frozenset({"A"}), transient=frozenset({"B"}))
        second = ErrorSignatures(transient=frozenset({"C"}), already_absent=frozenset({"D"}))

        merged = first.merged_with(second)

        assert merged.not_found == {"A"}
        assert merged.transient == {"B", "C"}
        assert merged.already_absent == {"D"}

    def test_empty_signatures_classify_everything_fatal(self) -> None:
        classifier = ErrorClassifier(ErrorSignatures())

        assert classifier.classify(ProviderCallError("SystemBusy")) is ErrorClass.FATAL
        assert classifier.classify(make_http_error(429)) is ErrorClass.RETRYABLE
