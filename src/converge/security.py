"""Credential acquisition for the ARM backend.

Only managed identities are accepted. Secrets for service principals or
users in the environment block startup instead of being silently picked up
by an SDK credential chain.
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate secret-based authentication
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)


class CredentialError(Exception):
    """Raised when secret-based credentials are present in the environment."""

    pass


def check_no_secrets() -> None:
    """Refuse to run with credential secrets in the environment.

    Raises:
        CredentialError: Naming the first offending variable.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Credential secret found in environment",
                extra={"env_var": env_var, "action": "startup_blocked"},
            )
            raise CredentialError(
                f"{env_var} is set. Only managed identity authentication is supported; "
                "remove credential secrets from the environment."
            )


def get_credential(client_id: str | None = None) -> ManagedIdentityCredential:
    """Get a managed identity credential after checking for secrets.

    Args:
        client_id: Client id of a user-assigned identity. If None, the
            system-assigned identity is used.

    Raises:
        CredentialError: If credential secrets are present in the environment.
    """
    check_no_secrets()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()
