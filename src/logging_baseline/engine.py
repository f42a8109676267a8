"""Placement decisions for organization logging resources.

The engine runs once per (account, region) with no state shared
between runs. Organization-wide singletons are placed by guard
predicates alone:

- the account public access block only in the home region,
- an access-log bucket in every account and region,
- the central log bucket only in the home region of the log-archive
  account.

A guard that misfires is still caught by the provisioners' name
conflict detection rather than producing a duplicate.
"""

import logging
from typing import Dict, Optional

from src.core.aws_client import AWSClientManager
from src.core.config import ConfigurationError
from src.logging_baseline.central_bucket import CentralLogBucketProvisioner
from src.logging_baseline.models import (
    LOG_ARCHIVE_ROLE,
    AccountsConfig,
    ExecutionContext,
    GlobalConfig,
    PlacementDecision,
    ProvisioningPlan,
    PublicAccessBlockSetting,
)
from src.logging_baseline.organization import OrganizationDirectory
from src.logging_baseline.public_access import AccessBlockEnforcer
from src.logging_baseline.secure_bucket import SecureBucketProvisioner


logger = logging.getLogger(__name__)

ACCESS_LOGS_KEY_ALIAS = 'alias/org-logging/s3-access-logs/s3'
ACCESS_LOGS_KEY_DESCRIPTION = 'S3 Access Logs Bucket CMK'
CENTRAL_LOGS_KEY_ALIAS = 'alias/org-logging/central-logs/s3'
CENTRAL_LOGS_KEY_DESCRIPTION = 'Central Logs Bucket CMK'


def access_log_bucket_name(account_id: str, region: str) -> str:
    return f"accesslogs-{account_id}-{region}"


def central_log_bucket_name(account_id: str, region: str) -> str:
    return f"centrallogs-{account_id}-{region}"


def resolve_log_archive_account_id(accounts_config: AccountsConfig,
                                   account_ids_by_email: Dict[str, str]) -> str:
    """Find the account ID of the log-archive account.

    Args:
        accounts_config: Account registry keyed by role
        account_ids_by_email: Mapping of account email to account ID

    Returns:
        Log-archive account ID

    Raises:
        ConfigurationError: When the role or its email mapping is missing
    """
    email = accounts_config.get_account_email(LOG_ARCHIVE_ROLE)
    if not email:
        raise ConfigurationError(
            f"Mandatory account '{LOG_ARCHIVE_ROLE}' is not configured"
        )

    account_id = account_ids_by_email.get(email) or account_ids_by_email.get(email.lower())
    if not account_id:
        raise ConfigurationError(
            f"No account ID found for {LOG_ARCHIVE_ROLE} account email {email}"
        )
    return account_id


class PlacementDecisionEngine:
    """Decides and provisions the logging resources for one context."""

    def __init__(self, aws_client: AWSClientManager,
                 organization_directory: Optional[OrganizationDirectory] = None) -> None:
        """Initialize placement decision engine.

        Args:
            aws_client: AWS client manager holding the context's credentials
            organization_directory: Optional directory, defaults to one
                built from aws_client
        """
        self.aws_client = aws_client
        self.organization_directory = organization_directory or OrganizationDirectory(
            aws_client
        )

    def decide(self, context: ExecutionContext, accounts_config: AccountsConfig,
               global_config: GlobalConfig,
               account_ids_by_email: Dict[str, str]) -> PlacementDecision:
        """Evaluate the placement guards without touching AWS.

        Raises:
            ConfigurationError: When the log-archive account cannot be resolved
        """
        log_archive_account_id = resolve_log_archive_account_id(
            accounts_config, account_ids_by_email
        )
        in_home_region = context.region == global_config.home_region
        hosts_central_bucket = (
            in_home_region and context.account_id == log_archive_account_id
        )

        return PlacementDecision(
            context=context,
            log_archive_account_id=log_archive_account_id,
            apply_public_access_block=in_home_region,
            access_log_bucket_name=access_log_bucket_name(
                context.account_id, context.region
            ),
            create_central_log_bucket=hosts_central_bucket,
            central_log_bucket_name=(
                central_log_bucket_name(context.account_id, context.region)
                if hosts_central_bucket else None
            ),
        )

    def evaluate(self, context: ExecutionContext, accounts_config: AccountsConfig,
                 global_config: GlobalConfig,
                 account_ids_by_email: Dict[str, str]) -> ProvisioningPlan:
        """Provision the logging resources this context is responsible for.

        Steps run strictly in order and any provisioner failure aborts
        the remaining ones; everything already provisioned is kept and
        a rerun picks up where this one stopped.

        Args:
            context: Account and region being deployed
            accounts_config: Account registry keyed by role
            global_config: Organization-wide settings
            account_ids_by_email: Mapping of account email to account ID

        Returns:
            ProvisioningPlan describing what was provisioned

        Raises:
            OrganizationLookupError: When the organization cannot be resolved
            ConfigurationError: When the log-archive account cannot be resolved
            ProvisioningError: When a provisioner fails
        """
        organization_id = self.organization_directory.get_organization_id()
        decision = self.decide(
            context, accounts_config, global_config, account_ids_by_email
        )
        plan = ProvisioningPlan(
            context=context, organization_id=organization_id, decision=decision
        )
        logger.info(
            f"Evaluating logging placement for {context.account_id} in {context.region}"
        )

        if decision.apply_public_access_block:
            AccessBlockEnforcer(self.aws_client, context.region).apply(
                context.account_id, PublicAccessBlockSetting.all_blocked()
            )
            plan.public_access_block_applied = True

        bucket_provisioner = SecureBucketProvisioner(self.aws_client, context.region)
        plan.access_log_bucket = bucket_provisioner.create(
            decision.access_log_bucket_name,
            ACCESS_LOGS_KEY_ALIAS,
            ACCESS_LOGS_KEY_DESCRIPTION,
        )

        if decision.create_central_log_bucket:
            central_provisioner = CentralLogBucketProvisioner(
                self.aws_client, context.region, bucket_provisioner
            )
            plan.central_log_bucket = central_provisioner.create(
                decision.central_log_bucket_name,
                plan.access_log_bucket,
                CENTRAL_LOGS_KEY_ALIAS,
                CENTRAL_LOGS_KEY_DESCRIPTION,
                organization_id,
            )

        logger.info(
            f"Logging placement complete for {context.account_id} in {context.region}"
        )
        return plan
