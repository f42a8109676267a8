"""Centralized AWS client management for logging baseline runs.

One manager is created per run and hands out region-scoped boto3
clients that share a single session, so every provisioner in an
(account, region) invocation talks to AWS with the same credentials.
"""

from typing import Dict, Optional
import boto3
from botocore.exceptions import (
    NoCredentialsError,
    ClientError,
    ProfileNotFound,
)


class AWSClientManager:
    """Session-backed factory for region-scoped AWS clients."""

    def __init__(self, profile_name: Optional[str] = None) -> None:
        """Initialize AWS client manager.

        Args:
            profile_name: Optional AWS profile name for credentials

        Raises:
            NoCredentialsError: When AWS credentials are not available
            ProfileNotFound: When specified profile doesn't exist
        """
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, boto3.client] = {}
        self._profile_name = profile_name
        self._account_id: Optional[str] = None
        self._validate_credentials()

    def _validate_credentials(self) -> None:
        """Resolve the caller identity once so bad credentials fail early.

        Raises:
            NoCredentialsError: When AWS credentials are missing or expired
            ProfileNotFound: When specified profile doesn't exist
        """
        try:
            session = self._get_session()
            identity = session.client("sts").get_caller_identity()
            self._account_id = identity["Account"]
        except ProfileNotFound:
            raise ProfileNotFound(profile=self._profile_name)
        except ClientError as e:
            if e.response["Error"]["Code"] in (
                "InvalidClientTokenId",
                "ExpiredToken",
            ):
                raise NoCredentialsError()
            raise

    def _get_session(self) -> boto3.Session:
        """Get or create boto3 session.

        Returns:
            Configured boto3 session
        """
        if self._session is None:
            if self._profile_name:
                self._session = boto3.Session(profile_name=self._profile_name)
            else:
                self._session = boto3.Session()
        return self._session

    def get_client(self, service_name: str, region_name: str) -> boto3.client:
        """Get AWS service client for specified region.

        Args:
            service_name: AWS service name (e.g., 's3', 'kms', 's3control')
            region_name: AWS region name (e.g., 'us-east-1')

        Returns:
            Configured boto3 client for the service and region
        """
        client_key = f"{service_name}_{region_name}"

        if client_key not in self._clients:
            session = self._get_session()
            self._clients[client_key] = session.client(
                service_name, region_name=region_name
            )

        return self._clients[client_key]

    def get_current_region(self) -> str:
        """Get current AWS region from session.

        Returns:
            Current AWS region name
        """
        session = self._get_session()
        return session.region_name or "us-east-1"

    def get_account_id(self) -> str:
        """Get the account ID the credentials belong to.

        Returns:
            Current AWS account ID

        Raises:
            ClientError: When unable to get account information
        """
        if self._account_id is None:
            sts_client = self.get_client("sts", self.get_current_region())
            self._account_id = sts_client.get_caller_identity()["Account"]
        return self._account_id
