"""Encrypted, access-logged S3 buckets with public access blocked.

Every bucket gets its own customer managed key, versioning, a
bucket-level public access block, bucket-owner-enforced object
ownership, a TLS-only bucket policy and server access logging.
Re-running against a bucket this tool already configured is a no-op;
a same-named bucket that is not ours is reported as a conflict.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from botocore.exceptions import ClientError

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import (
    AccessDeniedError,
    NameConflictError,
    ProvisioningError,
)
from src.logging_baseline.kms import EncryptionKeyManager
from src.logging_baseline.models import BucketHandle, PublicAccessBlockSetting


logger = logging.getLogger(__name__)

MANAGED_BY_TAG = {'Key': 'ManagedBy', 'Value': 'org-logging-baseline'}

# Bucket states reported by _get_bucket_state
BUCKET_MISSING = 'missing'
BUCKET_OWNED = 'owned'
BUCKET_FOREIGN = 'foreign'


class SecureBucketProvisioner:
    """Creates or verifies secure S3 buckets in one region."""

    def __init__(self, aws_client: AWSClientManager, region: str,
                 key_manager: Optional[EncryptionKeyManager] = None) -> None:
        """Initialize secure bucket provisioner.

        Args:
            aws_client: Configured AWS client manager
            region: Region the buckets are created in
            key_manager: Optional key manager, defaults to one for the region
        """
        self.aws_client = aws_client
        self.region = region
        self.key_manager = key_manager or EncryptionKeyManager(aws_client, region)

    def _get_client(self):
        return self.aws_client.get_client('s3', self.region)

    def create(self, name: str, key_alias: str, key_description: str,
               access_log_target: Optional[BucketHandle] = None,
               policy_statements: Optional[List[Dict[str, Any]]] = None,
               key_policy: Optional[Dict[str, Any]] = None) -> BucketHandle:
        """Create the bucket, or return it if it already exists as expected.

        Args:
            name: Globally unique bucket name
            key_alias: Alias of the bucket's dedicated KMS key
            key_description: Description used when the key is created
            access_log_target: Bucket receiving this bucket's access logs;
                the bucket logs to itself when omitted
            policy_statements: Extra bucket policy statements
            key_policy: Optional policy for a newly created key

        Returns:
            Handle to the bucket

        Raises:
            NameConflictError: When a same-named bucket is not ours
            AccessDeniedError: When the caller lacks S3 or KMS permissions
            ProvisioningError: When any provisioning call fails
        """
        account_id = self.aws_client.get_account_id()
        state = self._get_bucket_state(name, account_id)

        if state == BUCKET_FOREIGN:
            raise NameConflictError(
                f"Bucket {name} exists but is not owned by account {account_id}, "
                "or the caller lacks s3:ListBucket on it (S3 answers 403 for both)"
            )

        if state == BUCKET_OWNED:
            existing = self._verify_existing(name, key_alias)
            if existing is not None:
                logger.info(f"Bucket {name} already provisioned")
                return existing
            logger.info(f"Resuming configuration of partially created bucket {name}")
        else:
            self._create_bucket(name)

        key_arn = self.key_manager.ensure_key(key_alias, key_description, key_policy)
        self._configure_bucket(
            name, account_id, key_arn, access_log_target, policy_statements or []
        )

        logger.info(f"Provisioned bucket {name} in {self.region}")
        return BucketHandle(name=name, region=self.region, kms_key_arn=key_arn)

    def is_provisioned(self, bucket: BucketHandle) -> bool:
        """Check whether a bucket exists and belongs to the caller's account."""
        account_id = self.aws_client.get_account_id()
        return self._get_bucket_state(bucket.name, account_id) == BUCKET_OWNED

    def _get_bucket_state(self, name: str, account_id: str) -> str:
        try:
            self._get_client().head_bucket(Bucket=name, ExpectedBucketOwner=account_id)
            return BUCKET_OWNED
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code in ('404', 'NoSuchBucket', 'NotFound'):
                return BUCKET_MISSING
            if error_code in ('403', 'AccessDenied', 'Forbidden'):
                return BUCKET_FOREIGN
            raise ProvisioningError(f"Failed to look up bucket {name}: {e}")

    def _verify_existing(self, name: str, key_alias: str) -> Optional[BucketHandle]:
        """Match an owned bucket against the expected configuration.

        Returns:
            Handle when the bucket is encrypted with the expected key,
            None when it is ours but its configuration never completed

        Raises:
            NameConflictError: When the bucket is configured differently
        """
        client = self._get_client()
        bucket_key = self._get_bucket_kms_key(name)
        expected_key = self.key_manager.find_key(key_alias)

        if bucket_key is not None:
            if expected_key is None or bucket_key != expected_key:
                raise NameConflictError(
                    f"Bucket {name} is encrypted with {bucket_key}, "
                    f"expected the key behind {key_alias}"
                )
            return BucketHandle(name=name, region=self.region, kms_key_arn=expected_key)

        try:
            tags = client.get_bucket_tagging(Bucket=name)['TagSet']
        except ClientError as e:
            if e.response['Error']['Code'] != 'NoSuchTagSet':
                raise ProvisioningError(f"Failed to read tags of bucket {name}: {e}")
            tags = []

        if MANAGED_BY_TAG in tags:
            return None

        # A run interrupted between create_bucket and tagging leaves an
        # untagged, empty bucket behind
        if self._is_empty(name):
            logger.info(f"Adopting empty untagged bucket {name}")
            try:
                client.put_bucket_tagging(Bucket=name, Tagging={'TagSet': [MANAGED_BY_TAG]})
            except ClientError as e:
                self._raise_provisioning_error(name, 'tag', e)
            return None

        raise NameConflictError(
            f"Bucket {name} exists but was not created by this tool"
        )

    def _is_empty(self, name: str) -> bool:
        try:
            response = self._get_client().list_object_versions(Bucket=name, MaxKeys=1)
        except ClientError as e:
            raise ProvisioningError(f"Failed to list objects of bucket {name}: {e}")
        return not response.get('Versions') and not response.get('DeleteMarkers')

    def _get_bucket_kms_key(self, name: str) -> Optional[str]:
        try:
            response = self._get_client().get_bucket_encryption(Bucket=name)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ServerSideEncryptionConfigurationNotFoundError':
                return None
            raise ProvisioningError(f"Failed to read encryption of bucket {name}: {e}")

        for rule in response['ServerSideEncryptionConfiguration']['Rules']:
            default = rule.get('ApplyServerSideEncryptionByDefault', {})
            if default.get('SSEAlgorithm') == 'aws:kms':
                return default.get('KMSMasterKeyID')
        return None

    def _create_bucket(self, name: str) -> None:
        client = self._get_client()
        create_args: Dict[str, Any] = {'Bucket': name}
        # us-east-1 rejects an explicit location constraint
        if self.region != 'us-east-1':
            create_args['CreateBucketConfiguration'] = {
                'LocationConstraint': self.region
            }

        try:
            client.create_bucket(**create_args)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'BucketAlreadyExists':
                raise NameConflictError(f"Bucket name {name} is taken by another account")
            if error_code != 'BucketAlreadyOwnedByYou':
                self._raise_provisioning_error(name, 'create', e)

        try:
            client.put_bucket_tagging(Bucket=name, Tagging={'TagSet': [MANAGED_BY_TAG]})
        except ClientError as e:
            # An untagged bucket would look foreign to the next run
            try:
                client.delete_bucket(Bucket=name)
            except ClientError as delete_error:
                logger.error(f"Failed to remove untagged bucket {name}: {delete_error}")
            self._raise_provisioning_error(name, 'tag', e)

    def _configure_bucket(self, name: str, account_id: str, key_arn: str,
                          access_log_target: Optional[BucketHandle],
                          policy_statements: List[Dict[str, Any]]) -> None:
        client = self._get_client()
        bucket_arn = f"arn:aws:s3:::{name}"
        statements = [
            {
                'Sid': 'DenyInsecureTransport',
                'Effect': 'Deny',
                'Principal': '*',
                'Action': 's3:*',
                'Resource': [bucket_arn, f"{bucket_arn}/*"],
                'Condition': {'Bool': {'aws:SecureTransport': 'false'}},
            }
        ]
        if access_log_target is None:
            statements.append({
                'Sid': 'AllowServerAccessLogDelivery',
                'Effect': 'Allow',
                'Principal': {'Service': 'logging.s3.amazonaws.com'},
                'Action': 's3:PutObject',
                'Resource': f"{bucket_arn}/*",
                'Condition': {'StringEquals': {'aws:SourceAccount': account_id}},
            })
        statements.extend(policy_statements)

        log_target = access_log_target.name if access_log_target else name

        try:
            client.put_public_access_block(
                Bucket=name,
                PublicAccessBlockConfiguration=PublicAccessBlockSetting.all_blocked().to_api()
            )
            client.put_bucket_ownership_controls(
                Bucket=name,
                OwnershipControls={'Rules': [{'ObjectOwnership': 'BucketOwnerEnforced'}]}
            )
            client.put_bucket_versioning(
                Bucket=name,
                VersioningConfiguration={'Status': 'Enabled'}
            )
            client.put_bucket_policy(
                Bucket=name,
                Policy=json.dumps({'Version': '2012-10-17', 'Statement': statements})
            )
            client.put_bucket_logging(
                Bucket=name,
                BucketLoggingStatus={
                    'LoggingEnabled': {
                        'TargetBucket': log_target,
                        'TargetPrefix': f"{name}/",
                    }
                }
            )
            # Encryption last; an owned bucket with our key counts as done
            client.put_bucket_encryption(
                Bucket=name,
                ServerSideEncryptionConfiguration={
                    'Rules': [
                        {
                            'ApplyServerSideEncryptionByDefault': {
                                'SSEAlgorithm': 'aws:kms',
                                'KMSMasterKeyID': key_arn,
                            },
                            'BucketKeyEnabled': True,
                        }
                    ]
                }
            )
        except ClientError as e:
            self._raise_provisioning_error(name, 'configure', e)

    def _raise_provisioning_error(self, name: str, action: str, error: ClientError) -> None:
        if error.response['Error']['Code'] in ('AccessDenied', 'AccessDeniedException'):
            raise AccessDeniedError(f"Not permitted to {action} bucket {name}: {error}")
        raise ProvisioningError(f"Failed to {action} bucket {name}: {error}")
