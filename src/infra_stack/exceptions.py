"""Exception types raised by infra-stack modules."""


class ProvisioningError(Exception):
    """Base class for all infra-stack errors."""


class ValidationError(ProvisioningError, ValueError):
    """Raised when a descriptor or configuration block is rejected.

    Always raised before any output is produced, so callers never see a
    partially built manifest or trigger list.
    """


class DeploymentError(ProvisioningError):
    """Raised when an AWS call made by a deployer fails."""

    def __init__(self, message: str, resource: str = None):
        super().__init__(message)
        self.resource = resource
