"""Organization-wide central log bucket.

The central bucket is the destination for CloudTrail, AWS Config,
VPC Flow Logs and any other logs member accounts ship centrally. Its
bucket and key policies admit principals from the owning organization
only.
"""

import logging
from typing import Any, Dict, List, Optional

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import DependencyError
from src.logging_baseline.models import BucketHandle
from src.logging_baseline.secure_bucket import SecureBucketProvisioner


logger = logging.getLogger(__name__)

LOG_DELIVERY_SERVICES = [
    'cloudtrail.amazonaws.com',
    'config.amazonaws.com',
    'delivery.logs.amazonaws.com',
]


def build_bucket_policy_statements(bucket_name: str,
                                   organization_id: str) -> List[Dict[str, Any]]:
    """Bucket policy statements scoping writes to one organization.

    Args:
        bucket_name: Central log bucket name
        organization_id: Organization allowed to write

    Returns:
        List of policy statements
    """
    bucket_arn = f"arn:aws:s3:::{bucket_name}"
    objects_arn = f"{bucket_arn}/*"
    return [
        {
            'Sid': 'AllowOrganizationPrincipalsWrite',
            'Effect': 'Allow',
            'Principal': {'AWS': '*'},
            'Action': ['s3:PutObject', 's3:GetBucketLocation', 's3:ListBucket'],
            'Resource': [bucket_arn, objects_arn],
            'Condition': {'StringEquals': {'aws:PrincipalOrgID': organization_id}},
        },
        {
            'Sid': 'AllowLogDeliveryAclCheck',
            'Effect': 'Allow',
            'Principal': {'Service': LOG_DELIVERY_SERVICES},
            'Action': ['s3:GetBucketAcl', 's3:ListBucket'],
            'Resource': bucket_arn,
            'Condition': {'StringEquals': {'aws:SourceOrgID': organization_id}},
        },
        {
            'Sid': 'AllowLogDeliveryWrite',
            'Effect': 'Allow',
            'Principal': {'Service': LOG_DELIVERY_SERVICES},
            'Action': 's3:PutObject',
            'Resource': objects_arn,
            'Condition': {'StringEquals': {'aws:SourceOrgID': organization_id}},
        },
        {
            'Sid': 'DenyLogDeletion',
            'Effect': 'Deny',
            'Principal': '*',
            'Action': ['s3:DeleteObject', 's3:DeleteObjectVersion'],
            'Resource': objects_arn,
        },
    ]


def build_key_policy(account_id: str, organization_id: str) -> Dict[str, Any]:
    """Key policy letting the organization encrypt into the central bucket.

    Args:
        account_id: Account owning the key
        organization_id: Organization allowed to use the key

    Returns:
        Key policy document
    """
    return {
        'Version': '2012-10-17',
        'Statement': [
            {
                'Sid': 'EnableAccountAdministration',
                'Effect': 'Allow',
                'Principal': {'AWS': f"arn:aws:iam::{account_id}:root"},
                'Action': 'kms:*',
                'Resource': '*',
            },
            {
                'Sid': 'AllowOrganizationPrincipalsUse',
                'Effect': 'Allow',
                'Principal': {'AWS': '*'},
                'Action': ['kms:Encrypt', 'kms:GenerateDataKey*', 'kms:DescribeKey'],
                'Resource': '*',
                'Condition': {'StringEquals': {'aws:PrincipalOrgID': organization_id}},
            },
            {
                'Sid': 'AllowLogDeliveryUse',
                'Effect': 'Allow',
                'Principal': {'Service': LOG_DELIVERY_SERVICES},
                'Action': ['kms:Encrypt', 'kms:GenerateDataKey*', 'kms:DescribeKey'],
                'Resource': '*',
                'Condition': {'StringEquals': {'aws:SourceOrgID': organization_id}},
            },
        ],
    }


class CentralLogBucketProvisioner:
    """Creates the single organization-wide central log bucket."""

    def __init__(self, aws_client: AWSClientManager, region: str,
                 bucket_provisioner: Optional[SecureBucketProvisioner] = None) -> None:
        """Initialize central log bucket provisioner.

        Args:
            aws_client: Configured AWS client manager
            region: Region the bucket is created in
            bucket_provisioner: Optional provisioner used for the bucket itself
        """
        self.aws_client = aws_client
        self.region = region
        self.bucket_provisioner = bucket_provisioner or SecureBucketProvisioner(
            aws_client, region
        )

    def create(self, name: str, access_log_target: BucketHandle, key_alias: str,
               key_description: str, organization_id: str) -> BucketHandle:
        """Create the central log bucket, or return it if already provisioned.

        Args:
            name: Globally unique bucket name
            access_log_target: Existing bucket receiving this bucket's access logs
            key_alias: Alias of the bucket's dedicated KMS key
            key_description: Description used when the key is created
            organization_id: Organization whose principals may write logs

        Returns:
            Handle to the central log bucket

        Raises:
            DependencyError: When the access log target does not exist yet
            NameConflictError: When a same-named bucket is not ours
            ProvisioningError: When any provisioning call fails
        """
        if not self.bucket_provisioner.is_provisioned(access_log_target):
            raise DependencyError(
                f"Access log bucket {access_log_target.name} must exist "
                f"before central log bucket {name}"
            )

        account_id = self.aws_client.get_account_id()
        bucket = self.bucket_provisioner.create(
            name,
            key_alias,
            key_description,
            access_log_target=access_log_target,
            policy_statements=build_bucket_policy_statements(name, organization_id),
            key_policy=build_key_policy(account_id, organization_id),
        )
        logger.info(f"Central log bucket {name} scoped to organization {organization_id}")
        return bucket
