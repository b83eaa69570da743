"""Desired-state document loading with validation.

A tag document declares the full tag set one ARM scope should carry:

    scope: /subscriptions/.../resourceGroups/rg-app
    timeoutSeconds: 120
    tags:
      env: prod
      owner: platform

The Kubernetes-style wrapper (apiVersion/kind/metadata/spec) is accepted too.
File size is checked before reading.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SIZE_BYTES = 1024 * 1024  # 1MB
MAX_TAGS_PER_SCOPE = 50
MAX_TAG_KEY_LENGTH = 512
MAX_TAG_VALUE_LENGTH = 256


class DesiredStateError(Exception):
    """Raised when a desired-state document cannot be loaded or validated."""

    pass


class TagDocument(BaseModel):
    """Desired tag set for one ARM scope."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    scope: Annotated[str, Field(min_length=1)]
    tags: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int | None = Field(None, ge=1, le=7200, alias="timeoutSeconds")

    @field_validator("scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        if not v.startswith("/subscriptions/"):
            raise ValueError("scope must be an ARM id starting with /subscriptions/")
        return v.rstrip("/")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: dict[str, str]) -> dict[str, str]:
        if len(v) > MAX_TAGS_PER_SCOPE:
            raise ValueError(f"at most {MAX_TAGS_PER_SCOPE} tags are allowed per scope")
        for key, value in v.items():
            if not key or len(key) > MAX_TAG_KEY_LENGTH:
                raise ValueError(f"tag key must be 1-{MAX_TAG_KEY_LENGTH} characters: {key!r}")
            if len(value) > MAX_TAG_VALUE_LENGTH:
                raise ValueError(f"tag value for {key!r} exceeds {MAX_TAG_VALUE_LENGTH} characters")
        return v


def load_tag_document(path: Path) -> TagDocument:
    """Load and validate a tag document from YAML.

    Raises:
        DesiredStateError: If the file is missing, too large, not YAML, or
            fails validation.
    """
    if not path.exists():
        raise DesiredStateError(f"Desired-state file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise DesiredStateError(f"Failed to stat desired-state file {path}: {e}") from e

    if file_size > MAX_DOCUMENT_SIZE_BYTES:
        raise DesiredStateError(
            f"Desired-state file exceeds maximum size of {MAX_DOCUMENT_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DesiredStateError(f"Failed to read desired-state file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise DesiredStateError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise DesiredStateError(f"Desired-state file must contain a YAML mapping: {path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        data = raw_data.get("spec")
        if not isinstance(data, dict):
            raise DesiredStateError(f"spec section must be a mapping: {path}")
    else:
        data = raw_data

    # YAML turns unquoted numbers/booleans into non-strings
    tags = data.get("tags")
    if isinstance(tags, dict):
        data = {**data, "tags": {str(k): "" if v is None else str(v) for k, v in tags.items()}}

    try:
        document = TagDocument.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise DesiredStateError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info(
        "Loaded tag document for scope '%s' from %s (%d tags)",
        document.scope,
        path,
        len(document.tags),
    )
    return document
