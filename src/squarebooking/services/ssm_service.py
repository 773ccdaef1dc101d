"""SSM Parameter Store access for Stripe credentials.

Parameters live under ``/squarebooking/<environment>/<service>/<name>`` as
SecureStrings, e.g. ``/squarebooking/prod/stripe/webhook_secret``.
"""

import logging
import os
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

PARAMETER_ROOT = "/squarebooking"


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""


class SSMService:
    """Cached reader for SecureString parameters."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize the SSM client.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def parameter_path(self, service: str, name: str) -> str:
        return f"{PARAMETER_ROOT}/{self.environment}/{service}/{name}"

    def get_parameter(self, path: str, *, use_cache: bool = True) -> str:
        """Retrieve a decrypted parameter value.

        Args:
            path: Full parameter path
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and path in self._cache:
            return self._cache[path]

        try:
            logger.info("Fetching SSM parameter: %s", path)
            response = self._client.get_parameter(Name=path, WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {path}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {path}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(f"Failed to retrieve SSM parameter {path}: {e}") from e

        value = response["Parameter"]["Value"]
        self._cache[path] = value
        return value

    def get_service_secret(self, service: str, name: str) -> str:
        """Retrieve ``/squarebooking/<env>/<service>/<name>``."""
        return self.get_parameter(self.parameter_path(service, name))


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
