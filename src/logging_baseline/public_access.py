"""Account-level S3 public access block."""

import logging
from botocore.exceptions import ClientError

from src.core.aws_client import AWSClientManager
from src.logging_baseline.errors import AccessDeniedError, ProvisioningError
from src.logging_baseline.models import PublicAccessBlockSetting


logger = logging.getLogger(__name__)


class AccessBlockEnforcer:
    """Applies the S3 public access block to a whole account.

    S3 account settings are global, so the region only selects the
    s3control endpoint.
    """

    def __init__(self, aws_client: AWSClientManager, region: str) -> None:
        self.aws_client = aws_client
        self.region = region

    def _get_client(self):
        return self.aws_client.get_client('s3control', self.region)

    def get_current(self, account_id: str) -> PublicAccessBlockSetting:
        """Read the account's current public access block.

        Args:
            account_id: Target AWS account ID

        Returns:
            Current setting; all False when none has been configured

        Raises:
            AccessDeniedError: When the caller cannot read the setting
            ProvisioningError: When the lookup fails
        """
        try:
            response = self._get_client().get_public_access_block(AccountId=account_id)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'NoSuchPublicAccessBlockConfiguration':
                return PublicAccessBlockSetting(False, False, False, False)
            if error_code == 'AccessDenied':
                raise AccessDeniedError(
                    f"Not permitted to read public access block for {account_id}"
                )
            raise ProvisioningError(f"Failed to read public access block: {e}")
        return PublicAccessBlockSetting.from_api(
            response['PublicAccessBlockConfiguration']
        )

    def apply(self, account_id: str, flags: PublicAccessBlockSetting) -> None:
        """Converge the account's public access block to the given flags.

        Nothing is written when the account already matches.

        Args:
            account_id: Target AWS account ID
            flags: Desired public access block setting

        Raises:
            AccessDeniedError: When the caller cannot change the setting
            ProvisioningError: When the update fails
        """
        if self.get_current(account_id) == flags:
            logger.info(f"Public access block already applied to {account_id}")
            return

        try:
            self._get_client().put_public_access_block(
                AccountId=account_id,
                PublicAccessBlockConfiguration=flags.to_api()
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'AccessDenied':
                raise AccessDeniedError(
                    f"Not permitted to set public access block for {account_id}"
                )
            raise ProvisioningError(f"Failed to set public access block: {e}")

        logger.info(f"Public access block applied to {account_id}")
