"""
Exception taxonomy.

Only configuration errors cross the public API as exceptions. Model and
tool failures are raised inside their own layer and recorded on the
Step/Execution by the coordinator.
"""

from typing import Optional


class StepforceError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(StepforceError):
    """Agent definition or request rejected before an execution is created."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid configuration")


class ModelInvocationError(StepforceError):
    """A model call failed.

    Attributes:
        transient: True for rate limits, timeouts and connection errors
        error_type: Name of the underlying provider error
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.transient = transient
        self.error_type = error_type or type(self).__name__
        self.attempts = 1


class TransientModelError(ModelInvocationError):
    def __init__(self, message: str, error_type: Optional[str] = None):
        super().__init__(message, transient=True, error_type=error_type)


class ToolRegistrationError(StepforceError):
    """Raised when a tool name is registered twice."""


class InvalidTransitionError(StepforceError):
    """Raised when a terminal execution is asked to change status."""
