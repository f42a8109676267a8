"""Exception types raised while placing and provisioning logging resources."""

from src.core.config import ConfigurationError


class ProvisioningError(Exception):
    """Raised when the provisioning backend fails."""
    pass


class AccessDeniedError(ProvisioningError, PermissionError):
    """Raised when the caller lacks authority over the target resource."""
    pass


class NameConflictError(ProvisioningError):
    """Raised when a bucket with the expected name exists but is not ours."""
    pass


class DependencyError(ProvisioningError):
    """Raised when a resource this one depends on has not been provisioned."""
    pass


class OrganizationLookupError(LookupError):
    """Raised when the caller is not part of a recognized organization."""
    pass


__all__ = [
    "ConfigurationError",
    "ProvisioningError",
    "AccessDeniedError",
    "NameConflictError",
    "DependencyError",
    "OrganizationLookupError",
]
