"""Customer managed KMS keys for logging buckets."""

import json
import logging
from typing import Any, Dict, Optional
from botocore.exceptions import ClientError

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import AccessDeniedError, ProvisioningError


logger = logging.getLogger(__name__)

PENDING_DELETION_DAYS = 7


class EncryptionKeyManager:
    """Finds or creates a dedicated key behind an alias in one region."""

    def __init__(self, aws_client: AWSClientManager, region: str) -> None:
        self.aws_client = aws_client
        self.region = region

    def _get_client(self):
        return self.aws_client.get_client('kms', self.region)

    def find_key(self, alias: str) -> Optional[str]:
        """Look up the key behind an alias.

        Args:
            alias: Key alias including the 'alias/' prefix

        Returns:
            Key ARN or None if the alias does not exist

        Raises:
            ProvisioningError: When the lookup fails
        """
        try:
            response = self._get_client().describe_key(KeyId=alias)
            return response['KeyMetadata']['Arn']
        except ClientError as e:
            if e.response['Error']['Code'] == 'NotFoundException':
                return None
            raise ProvisioningError(f"Failed to describe key {alias}: {e}")

    def ensure_key(self, alias: str, description: str,
                   key_policy: Optional[Dict[str, Any]] = None) -> str:
        """Return the key behind an alias, creating it if needed.

        New keys are symmetric, have automatic rotation enabled and are
        never shared with any other alias.

        Args:
            alias: Key alias including the 'alias/' prefix
            description: Human readable key description
            key_policy: Optional key policy document

        Returns:
            Key ARN

        Raises:
            AccessDeniedError: When key creation is not permitted
            ProvisioningError: When key creation fails
        """
        key_arn = self.find_key(alias)
        if key_arn:
            logger.debug(f"Reusing key {key_arn} for {alias}")
            return key_arn

        client = self._get_client()
        create_args: Dict[str, Any] = {
            'Description': description,
            'KeyUsage': 'ENCRYPT_DECRYPT',
            'KeySpec': 'SYMMETRIC_DEFAULT',
        }
        if key_policy:
            create_args['Policy'] = json.dumps(key_policy)

        try:
            response = client.create_key(**create_args)
        except ClientError as e:
            if e.response['Error']['Code'] == 'AccessDeniedException':
                raise AccessDeniedError(f"Not permitted to create key {alias}: {e}")
            raise ProvisioningError(f"Failed to create key {alias}: {e}")

        key_arn = response['KeyMetadata']['Arn']
        try:
            client.enable_key_rotation(KeyId=key_arn)
            client.create_alias(AliasName=alias, TargetKeyId=key_arn)
        except ClientError as e:
            # Without its alias the key is unreachable by later runs
            self._schedule_deletion(key_arn)
            error_code = e.response['Error']['Code']
            if error_code == 'AlreadyExistsException':
                # Alias created concurrently; use whatever it points at
                return self.find_key(alias)
            if error_code == 'AccessDeniedException':
                raise AccessDeniedError(f"Not permitted to set up key {alias}: {e}")
            raise ProvisioningError(f"Failed to set up key {alias}: {e}")

        logger.info(f"Created KMS key {key_arn} with alias {alias}")
        return key_arn

    def _schedule_deletion(self, key_arn: str) -> None:
        try:
            self._get_client().schedule_key_deletion(
                KeyId=key_arn, PendingWindowInDays=PENDING_DELETION_DAYS
            )
            logger.info(f"Scheduled deletion of orphaned key {key_arn}")
        except ClientError as e:
            logger.error(f"Failed to schedule deletion of orphaned key {key_arn}: {e}")
