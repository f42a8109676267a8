"""AWS Organizations lookups for logging resource placement.

Resolves the organization ID that scopes the central log bucket's
policies and the email to account ID map the placement guards use to
identify the log-archive account.
"""

import logging
from typing import Dict, Optional
from botocore.exceptions import ClientError

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import (
    AccessDeniedError,
    OrganizationLookupError,
    ProvisioningError,
)


logger = logging.getLogger(__name__)


class OrganizationDirectory:
    """Read-only view of the caller's AWS Organization."""

    def __init__(self, aws_client: AWSClientManager) -> None:
        """Initialize organization directory.

        Args:
            aws_client: Configured AWS client manager
        """
        self.aws_client = aws_client
        self._org_client = None
        self._organization_id: Optional[str] = None

    def _get_client(self):
        """Get Organizations client with caching.

        Returns:
            Configured Organizations client
        """
        if self._org_client is None:
            self._org_client = self.aws_client.get_client(
                'organizations',
                self.aws_client.get_current_region()
            )
        return self._org_client

    def get_organization_id(self) -> str:
        """Get the ID of the organization the caller belongs to.

        The result is cached for the lifetime of this directory.

        Returns:
            Organization ID (e.g. 'o-a1b2c3d4e5')

        Raises:
            OrganizationLookupError: When the account is not in an organization
        """
        if self._organization_id is not None:
            return self._organization_id

        try:
            response = self._get_client().describe_organization()
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'AWSOrganizationsNotInUseException':
                raise OrganizationLookupError(
                    "Current account is not a member of an AWS Organization"
                )
            raise OrganizationLookupError(f"Failed to describe organization: {e}")

        self._organization_id = response['Organization']['Id']
        logger.debug(f"Resolved organization ID {self._organization_id}")
        return self._organization_id

    def list_account_ids_by_email(self) -> Dict[str, str]:
        """Map every member account's email to its account ID.

        Only the management account or a delegated administrator may
        list accounts.

        Returns:
            Mapping of lower-cased account email to account ID

        Raises:
            AccessDeniedError: When the caller may not list accounts
            ProvisioningError: When the accounts cannot be listed
        """
        accounts: Dict[str, str] = {}
        try:
            paginator = self._get_client().get_paginator('list_accounts')
            for page in paginator.paginate():
                for account in page['Accounts']:
                    accounts[account['Email'].lower()] = account['Id']
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'AccessDeniedException':
                raise AccessDeniedError(
                    "Not permitted to list organization accounts; "
                    "configure 'accounts.account_ids' instead"
                )
            raise ProvisioningError(f"Failed to list organization accounts: {e}")

        logger.info(f"Resolved {len(accounts)} organization accounts by email")
        return accounts
