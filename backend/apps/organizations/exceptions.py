"""
Exceptions for organization provisioning.
"""


class ProvisioningError(Exception):
    """Base exception for tenant provisioning errors."""

    pass


class ProvisioningValidationError(ProvisioningError):
    """Signup input is invalid; nothing was created."""

    pass


class ProvisioningStepError(ProvisioningError):
    """
    A mandatory provisioning step failed.

    All previously completed mandatory steps have been compensated, so no
    partial tenant remains.
    """

    def __init__(self, step: str, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.step = step
        self.cause = cause
