"""Unit tests for Secure Bucket Provisioner."""

import json
import pytest
from unittest.mock import Mock
from botocore.exceptions import ClientError

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import (
    AccessDeniedError,
    NameConflictError,
    ProvisioningError,
)
from src.logging_baseline.kms import EncryptionKeyManager
from src.logging_baseline.models import BucketHandle
from src.logging_baseline.secure_bucket import MANAGED_BY_TAG, SecureBucketProvisioner


ACCOUNT_ID = '222222222222'
BUCKET = 'accesslogs-222222222222-us-west-2'
ALIAS = 'alias/org-logging/s3-access-logs/s3'
KEY_ARN = 'arn:aws:kms:us-west-2:222222222222:key/access-logs'


def client_error(code, operation='HeadBucket'):
    return ClientError({'Error': {'Code': code}}, operation)


def kms_encryption(key_arn):
    return {
        'ServerSideEncryptionConfiguration': {
            'Rules': [{
                'ApplyServerSideEncryptionByDefault': {
                    'SSEAlgorithm': 'aws:kms',
                    'KMSMasterKeyID': key_arn,
                },
                'BucketKeyEnabled': True,
            }]
        }
    }


@pytest.fixture
def mock_s3():
    return Mock()


@pytest.fixture
def mock_key_manager():
    key_manager = Mock(spec=EncryptionKeyManager)
    key_manager.ensure_key.return_value = KEY_ARN
    key_manager.find_key.return_value = KEY_ARN
    return key_manager


@pytest.fixture
def provisioner(mock_s3, mock_key_manager):
    aws_client = Mock(spec=AWSClientManager)
    aws_client.get_client.return_value = mock_s3
    aws_client.get_account_id.return_value = ACCOUNT_ID
    return SecureBucketProvisioner(aws_client, 'us-west-2', mock_key_manager)


class TestSecureBucketProvisionerCreate:

    def test_create_new_bucket(self, provisioner, mock_s3, mock_key_manager):
        """Test a missing bucket is created and fully configured."""
        mock_s3.head_bucket.side_effect = client_error('404')

        handle = provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        assert handle == BucketHandle(name=BUCKET, region='us-west-2', kms_key_arn=KEY_ARN)
        assert handle.arn == f"arn:aws:s3:::{BUCKET}"
        mock_s3.head_bucket.assert_called_once_with(
            Bucket=BUCKET, ExpectedBucketOwner=ACCOUNT_ID
        )
        mock_s3.create_bucket.assert_called_once_with(
            Bucket=BUCKET,
            CreateBucketConfiguration={'LocationConstraint': 'us-west-2'}
        )
        mock_s3.put_bucket_tagging.assert_called_once_with(
            Bucket=BUCKET, Tagging={'TagSet': [MANAGED_BY_TAG]}
        )
        mock_key_manager.ensure_key.assert_called_once_with(
            ALIAS, 'S3 Access Logs Bucket CMK', None
        )

    def test_new_bucket_is_encrypted_with_dedicated_key(self, provisioner, mock_s3):
        """Test default encryption uses the bucket's own KMS key."""
        mock_s3.head_bucket.side_effect = client_error('404')

        provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        rules = mock_s3.put_bucket_encryption.call_args.kwargs[
            'ServerSideEncryptionConfiguration']['Rules']
        assert rules[0]['ApplyServerSideEncryptionByDefault'] == {
            'SSEAlgorithm': 'aws:kms',
            'KMSMasterKeyID': KEY_ARN,
        }
        assert rules[0]['BucketKeyEnabled'] is True

    def test_new_bucket_blocks_public_access(self, provisioner, mock_s3):
        """Test the bucket-level public access block is set."""
        mock_s3.head_bucket.side_effect = client_error('404')

        provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_public_access_block.assert_called_once_with(
            Bucket=BUCKET,
            PublicAccessBlockConfiguration={
                'BlockPublicAcls': True,
                'IgnorePublicAcls': True,
                'BlockPublicPolicy': True,
                'RestrictPublicBuckets': True,
            }
        )
        mock_s3.put_bucket_ownership_controls.assert_called_once()
        mock_s3.put_bucket_versioning.assert_called_once_with(
            Bucket=BUCKET, VersioningConfiguration={'Status': 'Enabled'}
        )

    def test_new_bucket_logs_to_itself(self, provisioner, mock_s3):
        """Test a bucket without a target logs to itself."""
        mock_s3.head_bucket.side_effect = client_error('404')

        provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_bucket_logging.assert_called_once_with(
            Bucket=BUCKET,
            BucketLoggingStatus={
                'LoggingEnabled': {'TargetBucket': BUCKET, 'TargetPrefix': f"{BUCKET}/"}
            }
        )
        policy = json.loads(mock_s3.put_bucket_policy.call_args.kwargs['Policy'])
        sids = [statement['Sid'] for statement in policy['Statement']]
        assert sids == ['DenyInsecureTransport', 'AllowServerAccessLogDelivery']
        assert policy['Statement'][1]['Condition'] == {
            'StringEquals': {'aws:SourceAccount': ACCOUNT_ID}
        }

    def test_new_bucket_logs_to_target(self, provisioner, mock_s3):
        """Test access logs go to a designated target bucket."""
        mock_s3.head_bucket.side_effect = client_error('404')
        target = BucketHandle(name=BUCKET, region='us-west-2', kms_key_arn=KEY_ARN)
        extra = {'Sid': 'Extra', 'Effect': 'Allow'}

        provisioner.create('centrallogs-222222222222-us-west-2', 'alias/central',
                           'Central', access_log_target=target, policy_statements=[extra])

        logging_status = mock_s3.put_bucket_logging.call_args.kwargs['BucketLoggingStatus']
        assert logging_status['LoggingEnabled']['TargetBucket'] == BUCKET
        policy = json.loads(mock_s3.put_bucket_policy.call_args.kwargs['Policy'])
        assert [s['Sid'] for s in policy['Statement']] == ['DenyInsecureTransport', 'Extra']

    def test_create_in_us_east_1_omits_location(self, mock_s3, mock_key_manager):
        """Test us-east-1 buckets are created without a location constraint."""
        aws_client = Mock(spec=AWSClientManager)
        aws_client.get_client.return_value = mock_s3
        aws_client.get_account_id.return_value = ACCOUNT_ID
        mock_s3.head_bucket.side_effect = client_error('404')

        SecureBucketProvisioner(aws_client, 'us-east-1', mock_key_manager).create(
            'accesslogs-222222222222-us-east-1', ALIAS, 'S3 Access Logs Bucket CMK'
        )

        mock_s3.create_bucket.assert_called_once_with(
            Bucket='accesslogs-222222222222-us-east-1'
        )


class TestSecureBucketProvisionerExisting:

    def test_existing_bucket_is_returned_unchanged(self, provisioner, mock_s3, mock_key_manager):
        """Test a matching bucket is returned without any write."""
        mock_s3.get_bucket_encryption.return_value = kms_encryption(KEY_ARN)

        handle = provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        assert handle.kms_key_arn == KEY_ARN
        mock_s3.create_bucket.assert_not_called()
        mock_s3.put_bucket_encryption.assert_not_called()
        mock_s3.put_bucket_policy.assert_not_called()
        mock_key_manager.ensure_key.assert_not_called()

    def test_foreign_owner_conflict(self, provisioner, mock_s3):
        """Test a bucket owned by another account is a conflict."""
        mock_s3.head_bucket.side_effect = client_error('403')

        with pytest.raises(NameConflictError, match="not owned") as exc_info:
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        assert "s3:ListBucket" in str(exc_info.value)
        mock_s3.create_bucket.assert_not_called()

    def test_different_key_conflict(self, provisioner, mock_s3):
        """Test an owned bucket with another key is a conflict."""
        mock_s3.get_bucket_encryption.return_value = kms_encryption(
            'arn:aws:kms:us-west-2:222222222222:key/other'
        )

        with pytest.raises(NameConflictError):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_bucket_encryption.assert_not_called()

    def test_untagged_unencrypted_bucket_conflict(self, provisioner, mock_s3):
        """Test an owned bucket this tool did not create is a conflict."""
        mock_s3.get_bucket_encryption.return_value = {
            'ServerSideEncryptionConfiguration': {
                'Rules': [{'ApplyServerSideEncryptionByDefault': {'SSEAlgorithm': 'AES256'}}]
            }
        }
        mock_s3.get_bucket_tagging.side_effect = client_error('NoSuchTagSet', 'GetBucketTagging')
        mock_s3.list_object_versions.return_value = {'Versions': [{'Key': 'data.csv'}]}

        with pytest.raises(NameConflictError, match="not created by this tool"):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_bucket_policy.assert_not_called()

    def test_empty_untagged_bucket_is_adopted(self, provisioner, mock_s3, mock_key_manager):
        """Test an empty bucket left by a run stopped before tagging is resumed."""
        mock_s3.get_bucket_encryption.return_value = {
            'ServerSideEncryptionConfiguration': {
                'Rules': [{'ApplyServerSideEncryptionByDefault': {'SSEAlgorithm': 'AES256'}}]
            }
        }
        mock_s3.get_bucket_tagging.side_effect = client_error('NoSuchTagSet', 'GetBucketTagging')
        mock_s3.list_object_versions.return_value = {'Name': BUCKET}

        handle = provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        assert handle.kms_key_arn == KEY_ARN
        mock_s3.list_object_versions.assert_called_once_with(Bucket=BUCKET, MaxKeys=1)
        mock_s3.put_bucket_tagging.assert_called_once_with(
            Bucket=BUCKET, Tagging={'TagSet': [MANAGED_BY_TAG]}
        )
        mock_s3.create_bucket.assert_not_called()
        mock_s3.put_bucket_encryption.assert_called_once()

    def test_tag_failure_removes_new_bucket(self, provisioner, mock_s3):
        """Test a bucket that could not be tagged is deleted before failing."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.put_bucket_tagging.side_effect = client_error('SlowDown', 'PutBucketTagging')

        with pytest.raises(ProvisioningError):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.delete_bucket.assert_called_once_with(Bucket=BUCKET)
        mock_s3.put_bucket_encryption.assert_not_called()

    def test_tag_failure_reported_when_cleanup_fails(self, provisioner, mock_s3):
        """Test the tagging error still surfaces if the cleanup fails too."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.put_bucket_tagging.side_effect = client_error('SlowDown', 'PutBucketTagging')
        mock_s3.delete_bucket.side_effect = client_error('InternalError', 'DeleteBucket')

        with pytest.raises(ProvisioningError, match="tag"):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

    def test_bucket_created_concurrently_is_tagged(self, provisioner, mock_s3):
        """Test a bucket another run of ours just created is still tagged."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.create_bucket.side_effect = client_error('BucketAlreadyOwnedByYou', 'CreateBucket')

        provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_bucket_tagging.assert_called_once_with(
            Bucket=BUCKET, Tagging={'TagSet': [MANAGED_BY_TAG]}
        )

    def test_partially_created_bucket_is_resumed(self, provisioner, mock_s3, mock_key_manager):
        """Test an interrupted run's bucket is configured on rerun."""
        mock_s3.get_bucket_encryption.side_effect = client_error(
            'ServerSideEncryptionConfigurationNotFoundError', 'GetBucketEncryption'
        )
        mock_s3.get_bucket_tagging.return_value = {'TagSet': [MANAGED_BY_TAG]}

        handle = provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        assert handle.name == BUCKET
        mock_s3.create_bucket.assert_not_called()
        mock_s3.put_bucket_encryption.assert_called_once()
        mock_key_manager.ensure_key.assert_called_once()

    def test_name_taken_globally(self, provisioner, mock_s3):
        """Test a name taken in another account is a conflict."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.create_bucket.side_effect = client_error('BucketAlreadyExists', 'CreateBucket')

        with pytest.raises(NameConflictError, match="taken"):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

    def test_create_access_denied(self, provisioner, mock_s3):
        """Test denied bucket creation raises AccessDeniedError."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.create_bucket.side_effect = client_error('AccessDenied', 'CreateBucket')

        with pytest.raises(AccessDeniedError):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

    def test_configuration_failure(self, provisioner, mock_s3):
        """Test configuration failures raise ProvisioningError."""
        mock_s3.head_bucket.side_effect = client_error('404')
        mock_s3.put_bucket_policy.side_effect = client_error('MalformedPolicy', 'PutBucketPolicy')

        with pytest.raises(ProvisioningError):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')

        mock_s3.put_bucket_encryption.assert_not_called()

    def test_head_bucket_failure(self, provisioner, mock_s3):
        """Test unexpected lookup failures raise ProvisioningError."""
        mock_s3.head_bucket.side_effect = client_error('500')

        with pytest.raises(ProvisioningError):
            provisioner.create(BUCKET, ALIAS, 'S3 Access Logs Bucket CMK')


class TestIsProvisioned:

    def test_is_provisioned(self, provisioner, mock_s3):
        handle = BucketHandle(name=BUCKET, region='us-west-2', kms_key_arn=KEY_ARN)

        assert provisioner.is_provisioned(handle) is True

    def test_is_not_provisioned(self, provisioner, mock_s3):
        mock_s3.head_bucket.side_effect = client_error('404')
        handle = BucketHandle(name=BUCKET, region='us-west-2', kms_key_arn=KEY_ARN)

        assert provisioner.is_provisioned(handle) is False
