"""Composite remote resource ids.

Child resources are addressed by a delimiter-joined tuple such as
``instanceId:topic`` or ``loadBalancerId:port``.
"""

from __future__ import annotations

from .errors import MalformedIdError

ID_SEPARATOR = ":"


def parse_resource_id(
    resource_id: str,
    parts: int,
    separator: str = ID_SEPARATOR,
    operation: str = "ParseResourceId",
) -> list[str]:
    """Split a resource id into exactly ``parts`` non-empty parts.

    Single-part ids are returned as-is and never split, since some providers
    (ARM) use ids that legitimately contain the separator.

    Raises:
        MalformedIdError: If the id is empty or does not have ``parts`` parts.
    """
    if parts < 1:
        raise ValueError(f"parts must be at least 1, got {parts}")

    if not resource_id:
        raise MalformedIdError(resource_id, operation, detail="id is empty")

    if parts == 1:
        return [resource_id]

    split = resource_id.split(separator)
    if len(split) != parts or any(not part for part in split):
        raise MalformedIdError(
            resource_id,
            operation,
            detail=f"expected {parts} parts separated by '{separator}', got {len(split)}",
        )
    return split


def build_resource_id(*parts: str, separator: str = ID_SEPARATOR) -> str:
    """Join id parts into a composite resource id."""
    if not parts:
        raise ValueError("at least one id part is required")
    return separator.join(str(part) for part in parts)
