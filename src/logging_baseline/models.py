"""Data model for logging placement decisions and provisioned resources."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


LOG_ARCHIVE_ROLE = "log-archive"


@dataclass(frozen=True)
class ExecutionContext:
    """Account and region the engine is currently running in."""

    account_id: str
    region: str


@dataclass(frozen=True)
class AccountConfig:
    """Configured metadata for a single account."""

    name: str
    email: str


@dataclass
class AccountsConfig:
    """Account registry keyed by logical role (e.g. 'log-archive')."""

    mandatory_accounts: Dict[str, AccountConfig] = field(default_factory=dict)
    workload_accounts: List[AccountConfig] = field(default_factory=list)

    def get_account_email(self, role: str) -> Optional[str]:
        """Get the email configured for a mandatory account role.

        Args:
            role: Logical account role name

        Returns:
            Account email or None if the role is not configured
        """
        account = self.mandatory_accounts.get(role)
        return account.email if account else None


@dataclass(frozen=True)
class GlobalConfig:
    """Organization-wide settings."""

    home_region: str
    governed_regions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PublicAccessBlockSetting:
    """The four S3 public access block toggles."""

    block_public_acls: bool = True
    block_public_policy: bool = True
    ignore_public_acls: bool = True
    restrict_public_buckets: bool = True

    @classmethod
    def all_blocked(cls) -> "PublicAccessBlockSetting":
        return cls(True, True, True, True)

    @classmethod
    def from_api(cls, configuration: Dict[str, bool]) -> "PublicAccessBlockSetting":
        return cls(
            block_public_acls=configuration.get('BlockPublicAcls', False),
            block_public_policy=configuration.get('BlockPublicPolicy', False),
            ignore_public_acls=configuration.get('IgnorePublicAcls', False),
            restrict_public_buckets=configuration.get('RestrictPublicBuckets', False),
        )

    def to_api(self) -> Dict[str, bool]:
        """Render as a boto3 PublicAccessBlockConfiguration."""
        return {
            'BlockPublicAcls': self.block_public_acls,
            'IgnorePublicAcls': self.ignore_public_acls,
            'BlockPublicPolicy': self.block_public_policy,
            'RestrictPublicBuckets': self.restrict_public_buckets,
        }


@dataclass(frozen=True)
class BucketHandle:
    """Reference to a provisioned S3 bucket."""

    name: str
    region: str
    kms_key_arn: str

    @property
    def arn(self) -> str:
        return f"arn:aws:s3:::{self.name}"


@dataclass(frozen=True)
class PlacementDecision:
    """Outcome of the placement guards for one execution context.

    Computed without touching AWS; the engine acts on it afterwards.
    """

    context: ExecutionContext
    log_archive_account_id: str
    apply_public_access_block: bool
    access_log_bucket_name: str
    create_central_log_bucket: bool
    central_log_bucket_name: Optional[str] = None


@dataclass
class ProvisioningPlan:
    """Result of evaluating one execution context."""

    context: ExecutionContext
    organization_id: str
    decision: PlacementDecision
    public_access_block_applied: bool = False
    access_log_bucket: Optional[BucketHandle] = None
    central_log_bucket: Optional[BucketHandle] = None

    def to_dict(self) -> Dict[str, Any]:
        """Summarize the plan for reporting.

        Returns:
            Dictionary with the context and the resources touched
        """
        return {
            'account_id': self.context.account_id,
            'region': self.context.region,
            'organization_id': self.organization_id,
            'public_access_block_applied': self.public_access_block_applied,
            'access_log_bucket': self.access_log_bucket.name if self.access_log_bucket else None,
            'central_log_bucket': self.central_log_bucket.name if self.central_log_bucket else None,
        }
