"""Resource kind registry.

Each kind bundles what the waiter and the batch applier need to know about
one remote resource type:
- the typed result model its describe payload validates against
- how many parts its composite id has
- the provider error codes meaning "absent", "busy" and "already empty"
- the remote describe action name, for diagnostics
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .classifier import ErrorClassifier, ErrorSignatures
from .models import (
    AclResult,
    ArmResourceResult,
    CACertificateResult,
    DescribeResult,
    ListenerResult,
    LoadBalancerResult,
    OnsGroupResult,
    OnsInstanceResult,
    OnsTopicResult,
    RuleResult,
    ServerCertificateResult,
    ServerGroupResult,
    parse_describe_result,
)
from .resource_ids import parse_resource_id

# Provider-imposed maximum items per mutation call
ACL_ENTRY_CHUNK_SIZE = 50
TAG_CHUNK_SIZE = 5
TAG_PAGE_SIZE = 50

# Mutation action names, for error context
ADD_ACL_ENTRY_ACTION = "AddAccessControlListEntry"
REMOVE_ACL_ENTRY_ACTION = "RemoveAccessControlListEntry"
ADD_TAGS_ACTION = "AddTags"
REMOVE_TAGS_ACTION = "RemoveTags"

# =============================================================================
# Provider error codes
# =============================================================================

LOAD_BALANCER_NOT_FOUND = "InvalidLoadBalancerId.NotFound"
RULE_NOT_FOUND = "InvalidRuleId.NotFound"
SERVER_GROUP_NOT_FOUND = "The specified VServerGroupId does not exist"
INVALID_PARAMETER = "InvalidParameter"
LISTENER_NOT_FOUND = "The specified resource does not exist"
ACL_NOT_EXIST = "AclNotExist"
ACL_ENTRY_EMPTY = "AclEntryEmpty"
ONS_INSTANCE_NOT_EXIST = "INSTANCE_NOT_FOUND"
ONS_AUTH_RESOURCE_OWNER_ERROR = "AUTH_RESOURCE_OWNER_ERROR"
ONS_DOMAIN_NAME_NOT_EXIST = "InvalidDomainName.NoExist"

SLB_BUSY: frozenset[str] = frozenset({
    "SystemBusy",
    "OperationBusy",
    "ServiceIsStopping",
    "BackendServer.configuring",
    "ServiceIsConfiguring",
})

# Transient signatures shared by every kind
COMMON_TRANSIENT: frozenset[str] = frozenset({
    "Throttling",
    "ServiceUnavailable",
    "TooManyRequests",
})

ARM_NOT_FOUND: frozenset[str] = frozenset({
    "ResourceNotFound",
    "ResourceGroupNotFound",
    "ParentResourceNotFound",
})

ARM_TRANSIENT: frozenset[str] = frozenset({
    "AnotherOperationInProgress",
    "RetryableError",
    "ServerBusy",
})


@dataclass(frozen=True)
class ResourceKind:
    """Static description of one remote resource type."""

    name: str
    result_model: type[DescribeResult]
    describe_action: str
    id_parts: int = 1
    signatures: ErrorSignatures = ErrorSignatures()

    def __post_init__(self) -> None:
        errors = []

        model = self.result_model
        if not (isinstance(model, type) and issubclass(model, DescribeResult)):
            errors.append("result_model must be a DescribeResult subclass")
        elif model.resource_id is DescribeResult.resource_id:
            errors.append(f"result_model {model.__name__} must define resource_id")

        if self.id_parts < 1:
            errors.append("id_parts must be at least 1")

        if errors:
            raise ValueError(f"Invalid resource kind '{self.name}': " + "; ".join(errors))

    def classifier(self) -> ErrorClassifier:
        """Build a classifier over this kind's signatures plus the common ones."""
        return ErrorClassifier(
            self.signatures.merged_with(ErrorSignatures(transient=COMMON_TRANSIENT))
        )

    def split_id(self, resource_id: str) -> list[str]:
        """Split a resource id of this kind into its parts.

        Raises:
            MalformedIdError: If the id does not have ``id_parts`` parts.
        """
        return parse_resource_id(resource_id, self.id_parts, operation=self.describe_action)

    def parse(self, payload: Any, resource_id: str) -> DescribeResult:
        """Validate a describe payload into this kind's result model.

        Raises:
            MalformedResponseError: If the payload does not validate.
        """
        return parse_describe_result(
            self.result_model, payload, resource_id, self.describe_action
        )


RESOURCE_KINDS: dict[str, ResourceKind] = {
    "slb": ResourceKind(
        name="slb",
        result_model=LoadBalancerResult,
        describe_action="DescribeLoadBalancerAttribute",
        signatures=ErrorSignatures(
            not_found=frozenset({LOAD_BALANCER_NOT_FOUND}),
            transient=SLB_BUSY,
        ),
    ),
    "slb_listener": ResourceKind(
        name="slb_listener",
        result_model=ListenerResult,
        describe_action="DescribeLoadBalancerListenerAttribute",
        id_parts=2,
        signatures=ErrorSignatures(
            not_found=frozenset({LISTENER_NOT_FOUND, LOAD_BALANCER_NOT_FOUND}),
            transient=SLB_BUSY,
        ),
    ),
    "slb_rule": ResourceKind(
        name="slb_rule",
        result_model=RuleResult,
        describe_action="DescribeRuleAttribute",
        signatures=ErrorSignatures(
            not_found=frozenset({RULE_NOT_FOUND}),
            transient=SLB_BUSY,
        ),
    ),
    "slb_server_group": ResourceKind(
        name="slb_server_group",
        result_model=ServerGroupResult,
        describe_action="DescribeVServerGroupAttribute",
        signatures=ErrorSignatures(
            not_found=frozenset({SERVER_GROUP_NOT_FOUND, INVALID_PARAMETER}),
            transient=SLB_BUSY,
        ),
    ),
    "slb_acl": ResourceKind(
        name="slb_acl",
        result_model=AclResult,
        describe_action="DescribeAccessControlListAttribute",
        signatures=ErrorSignatures(
            not_found=frozenset({ACL_NOT_EXIST}),
            transient=SLB_BUSY,
            already_absent=frozenset({ACL_ENTRY_EMPTY}),
        ),
    ),
    "slb_ca_certificate": ResourceKind(
        name="slb_ca_certificate",
        result_model=CACertificateResult,
        describe_action="DescribeCACertificates",
        signatures=ErrorSignatures(transient=SLB_BUSY),
    ),
    "slb_server_certificate": ResourceKind(
        name="slb_server_certificate",
        result_model=ServerCertificateResult,
        describe_action="DescribeServerCertificates",
        signatures=ErrorSignatures(transient=SLB_BUSY),
    ),
    "ons_instance": ResourceKind(
        name="ons_instance",
        result_model=OnsInstanceResult,
        describe_action="OnsInstanceBaseInfo",
        signatures=ErrorSignatures(
            not_found=frozenset({ONS_DOMAIN_NAME_NOT_EXIST, ONS_INSTANCE_NOT_EXIST}),
        ),
    ),
    "ons_topic": ResourceKind(
        name="ons_topic",
        result_model=OnsTopicResult,
        describe_action="OnsTopicList",
        id_parts=2,
        signatures=ErrorSignatures(
            not_found=frozenset({ONS_AUTH_RESOURCE_OWNER_ERROR, ONS_INSTANCE_NOT_EXIST}),
        ),
    ),
    "ons_group": ResourceKind(
        name="ons_group",
        result_model=OnsGroupResult,
        describe_action="OnsGroupList",
        id_parts=2,
        signatures=ErrorSignatures(
            not_found=frozenset({ONS_AUTH_RESOURCE_OWNER_ERROR, ONS_INSTANCE_NOT_EXIST}),
        ),
    ),
    "arm_resource": ResourceKind(
        name="arm_resource",
        result_model=ArmResourceResult,
        describe_action="Resources.GetById",
        signatures=ErrorSignatures(not_found=ARM_NOT_FOUND, transient=ARM_TRANSIENT),
    ),
}


def get_resource_kind(name: str) -> ResourceKind:
    """Get a registered resource kind by name.

    Raises:
        ValueError: If the kind is not registered.
    """
    kind = RESOURCE_KINDS.get(name)
    if kind is None:
        valid_kinds = sorted(RESOURCE_KINDS)
        raise ValueError(f"Unknown resource kind '{name}'. Valid kinds: {valid_kinds}")
    return kind
