"""Typed describe results.

Each remote describe call returns a raw JSON mapping. These models validate
that mapping at the boundary (fail fast, fail loudly) instead of asserting
types and silently falling back to zero values. A payload that does not
validate becomes a MalformedResponseError.

Every result exposes the two fields the waiter needs:
- ``resource_id``: identity, equal to the requested id when the object exists
- ``status``: free-form phase string (compared case-insensitively), or None
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, Field, ValidationError

from .errors import MalformedResponseError

# Status value that some kinds report while (or after) being removed
DELETED_STATUS = "deleted"


class DescribeResult(BaseModel):
    """Snapshot of a remote object's observable state at one point in time."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    # ARM ids are case-insensitive, provider ids are not
    identity_case_sensitive: ClassVar[bool] = True

    @property
    def resource_id(self) -> str:
        """Identity of the described object. Empty when the object is gone."""
        raise NotImplementedError("Subclasses must implement resource_id")

    @property
    def status(self) -> str | None:
        """Current status/phase, None for kinds without one."""
        return None

    @property
    def exists(self) -> bool:
        """Check if the snapshot proves the object exists."""
        return bool(self.resource_id)

    def status_matches(self, target: str) -> bool:
        """Compare status to target, case-insensitively."""
        if self.status is None:
            return False
        return self.status.lower() == target.lower()


# =============================================================================
# Load balancer
# =============================================================================


class BackendServer(BaseModel):
    """Instance attached to a load balancer."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    server_id: str = Field(alias="ServerId")
    weight: int | None = Field(None, alias="Weight")


class BackendServers(BaseModel):
    """Wrapper list as returned by the API."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    backend_server: list[BackendServer] = Field(default_factory=list, alias="BackendServer")


class LoadBalancerResult(DescribeResult):
    """DescribeLoadBalancerAttribute response."""

    load_balancer_id: str = Field(alias="LoadBalancerId")
    load_balancer_status: str | None = Field(None, alias="LoadBalancerStatus")
    load_balancer_name: str | None = Field(None, alias="LoadBalancerName")
    backend_servers: BackendServers = Field(default_factory=BackendServers, alias="BackendServers")

    @property
    def resource_id(self) -> str:
        return self.load_balancer_id

    @property
    def status(self) -> str | None:
        return self.load_balancer_status

    @property
    def attached_server_ids(self) -> set[str]:
        """Ids of instances currently attached as backend servers."""
        return {server.server_id for server in self.backend_servers.backend_server}


class ListenerResult(DescribeResult):
    """DescribeLoadBalancer<Protocol>ListenerAttribute response.

    A listener is addressed as ``loadBalancerId:port``; a zero port means the
    listener has not materialised yet.
    """

    load_balancer_id: str = Field(alias="LoadBalancerId")
    listener_port: int = Field(alias="ListenerPort")
    listener_status: str | None = Field(None, alias="Status")

    @property
    def resource_id(self) -> str:
        if self.listener_port <= 0:
            return ""
        return f"{self.load_balancer_id}:{self.listener_port}"

    @property
    def status(self) -> str | None:
        return self.listener_status


class RuleResult(DescribeResult):
    """DescribeRuleAttribute response."""

    rule_id: str = Field(alias="RuleId")
    rule_name: str | None = Field(None, alias="RuleName")

    @property
    def resource_id(self) -> str:
        return self.rule_id


class ServerGroupResult(DescribeResult):
    """DescribeVServerGroupAttribute response."""

    v_server_group_id: str = Field(alias="VServerGroupId")
    v_server_group_name: str | None = Field(None, alias="VServerGroupName")

    @property
    def resource_id(self) -> str:
        return self.v_server_group_id


class AclEntryResult(BaseModel):
    """One access-control entry as returned by the API."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    entry: str = Field(alias="AclEntryIP")
    comment: str | None = Field(None, alias="AclEntryComment")


class AclEntries(BaseModel):
    """Wrapper list as returned by the API (sic: ``AclEntrys``)."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    acl_entry: list[AclEntryResult] = Field(default_factory=list, alias="AclEntry")


class AclResult(DescribeResult):
    """DescribeAccessControlListAttribute response."""

    acl_id: str = Field(alias="AclId")
    acl_name: str | None = Field(None, alias="AclName")
    acl_entries: AclEntries = Field(default_factory=AclEntries, alias="AclEntrys")

    @property
    def resource_id(self) -> str:
        return self.acl_id

    @property
    def entries(self) -> list[AclEntryResult]:
        """Entries currently in the list."""
        return self.acl_entries.acl_entry


# =============================================================================
# Certificates
# =============================================================================


class CACertificate(BaseModel):
    """One CA certificate entry."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    ca_certificate_id: str = Field(alias="CACertificateId")
    ca_certificate_name: str | None = Field(None, alias="CACertificateName")


class CACertificates(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    ca_certificate: list[CACertificate] = Field(default_factory=list, alias="CACertificate")


class CACertificateResult(DescribeResult):
    """DescribeCACertificates response filtered to one id."""

    ca_certificates: CACertificates = Field(alias="CACertificates")

    @property
    def resource_id(self) -> str:
        certificates = self.ca_certificates.ca_certificate
        return certificates[0].ca_certificate_id if certificates else ""


class ServerCertificate(BaseModel):
    """One server certificate entry."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    server_certificate_id: str = Field(alias="ServerCertificateId")
    server_certificate_name: str | None = Field(None, alias="ServerCertificateName")


class ServerCertificates(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    server_certificate: list[ServerCertificate] = Field(
        default_factory=list, alias="ServerCertificate"
    )


class ServerCertificateResult(DescribeResult):
    """DescribeServerCertificates response filtered to one id."""

    server_certificates: ServerCertificates = Field(alias="ServerCertificates")

    @property
    def resource_id(self) -> str:
        certificates = self.server_certificates.server_certificate
        return certificates[0].server_certificate_id if certificates else ""


# =============================================================================
# Message queue
# =============================================================================


class OnsInstanceBaseInfo(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    instance_id: str = Field(alias="InstanceId")
    instance_status: int | str | None = Field(None, alias="InstanceStatus")


class OnsInstanceResult(DescribeResult):
    """OnsInstanceBaseInfo response."""

    instance_base_info: OnsInstanceBaseInfo = Field(alias="InstanceBaseInfo")

    @property
    def resource_id(self) -> str:
        return self.instance_base_info.instance_id

    @property
    def status(self) -> str | None:
        value = self.instance_base_info.instance_status
        return None if value is None else str(value)


class OnsTopicResult(DescribeResult):
    """One PublishInfoDo entry from OnsTopicList, addressed as ``instanceId:topic``."""

    instance_id: str = Field(alias="InstanceId")
    topic: str = Field(alias="Topic")

    @property
    def resource_id(self) -> str:
        return f"{self.instance_id}:{self.topic}"


class OnsGroupResult(DescribeResult):
    """One SubscribeInfoDo entry from OnsGroupList, addressed as ``instanceId:groupId``."""

    instance_id: str = Field(alias="InstanceId")
    group_id: str = Field(alias="GroupId")

    @property
    def resource_id(self) -> str:
        return f"{self.instance_id}:{self.group_id}"


# =============================================================================
# Azure Resource Manager
# =============================================================================


class ArmResourceResult(DescribeResult):
    """GenericResource as returned by ``resources.get_by_id(...).as_dict()``."""

    identity_case_sensitive: ClassVar[bool] = False

    id: str
    name: str | None = None
    type: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def resource_id(self) -> str:
        return self.id

    @property
    def status(self) -> str | None:
        state = self.properties.get("provisioningState")
        return state if isinstance(state, str) else None


def parse_describe_result(
    model: type[DescribeResult],
    payload: Any,
    resource_id: str,
    operation: str,
) -> DescribeResult:
    """Validate a raw describe payload into its typed result.

    Args:
        model: Result model for the resource kind.
        payload: Raw mapping from the SDK (or an already-typed result).
        resource_id: Requested id, for error context.
        operation: Remote action name, for error context.

    Raises:
        MalformedResponseError: If the payload is not a mapping or fails validation.
    """
    if isinstance(payload, model):
        return payload

    if not isinstance(payload, Mapping):
        raise MalformedResponseError(
            resource_id,
            operation,
            detail=f"expected a mapping for {model.__name__}, got {type(payload).__name__}",
        )

    try:
        return model.model_validate(dict(payload))
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"{loc}: {error['msg']}")
        raise MalformedResponseError(
            resource_id,
            operation,
            detail=f"{model.__name__} validation failed ({'; '.join(errors)})",
            cause=e,
        ) from e
