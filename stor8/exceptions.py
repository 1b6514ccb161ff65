"""
This module implements custom exceptions
"""

# Standard
from enum import Enum
from typing import Optional

## Base Error ##################################################################


class Stor8Error(Exception):
    """Base class for all stor8 exceptions"""

    def __init__(self, message: str, is_critical: bool):
        """Construct with a flag indicating whether this is a critical error.
        This will be a static property of all children.
        """
        super().__init__(message)
        self._is_critical = is_critical

    @property
    def is_critical(self):
        """Property indicating whether or not this error should abort the
        remainder of the current reconciliation cycle
        """
        return self._is_critical


## Critical Errors #############################################################


class Stor8CriticalError(Stor8Error):
    """A Stor8CriticalError is one that indicates that an essential
    precondition of a component failed and that continuing the current cycle is
    pointless.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_critical=True)


class ConfigError(Stor8CriticalError):
    """Exception caused during usage of user-provided configuration"""


class ClusterError(Stor8CriticalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


class RegistrationError(Stor8CriticalError):
    """Exception caused when a component cannot be added to a registry"""


class ConvergenceFatalError(Stor8CriticalError):
    """Exception raised by the convergence waiter when a probe reports a
    non-retryable failure that is not already a stor8 error
    """


class ConvergenceTimeoutError(Stor8CriticalError):
    """Exception raised when a bounded wait expires before the probe converged.
    The last pending reason is kept so operators can see what failed to
    converge.
    """

    def __init__(
        self,
        last_reason: str = "",
        attempts: int = 0,
        timeout: float = 0,
        description: str = "",
    ):
        self.last_reason = last_reason
        self.attempts = attempts
        self.timeout = timeout
        self.description = description
        prefix = f"{description}: " if description else ""
        super().__init__(
            f"{prefix}timed out after {timeout}s and {attempts} attempt(s). "
            + f"Last pending reason: {last_reason}"
        )


## Recoverable Errors ##########################################################


class Stor8RecoverableError(Stor8Error):
    """A Stor8RecoverableError is a component-local failure that should not
    block independent components and is expected to resolve in a subsequent
    cycle.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_critical=False)


class PreconditionError(Stor8RecoverableError):
    """Exception caused when an expected precondition is not met"""


class VerificationError(Stor8RecoverableError):
    """Exception caused during resource verification when a desired
    verification state is not reached
    """


class ConvergenceCancelledError(Stor8RecoverableError):
    """Exception raised when a bounded wait is cancelled before completion"""


## Component Errors ############################################################


class ErrorSeverity(Enum):
    """Severity attached to an error returned by a component"""

    CRITICAL = "critical"
    ADVISORY = "advisory"


class ComponentError(Stor8Error):
    """Wrapper that attaches an explicit severity to any error raised by a
    component's reconcile or delete
    """

    def __init__(self, severity: ErrorSeverity, cause: Exception, message: str = ""):
        self.severity = severity
        self.cause = cause
        super().__init__(
            message=message or str(cause),
            is_critical=severity == ErrorSeverity.CRITICAL,
        )
        self.__cause__ = cause


def get_severity(error: Exception) -> ErrorSeverity:
    """Classify an arbitrary error raised by a component. Errors that do not
    carry a stor8 classification are advisory.
    """
    if isinstance(error, ComponentError):
        return error.severity
    if getattr(error, "is_critical", False):
        return ErrorSeverity.CRITICAL
    return ErrorSeverity.ADVISORY


def critical(error: Exception, message: Optional[str] = None) -> ComponentError:
    """Shorthand for wrapping an error as critical"""
    return ComponentError(ErrorSeverity.CRITICAL, error, message or "")


def advisory(error: Exception, message: Optional[str] = None) -> ComponentError:
    """Shorthand for wrapping an error as advisory"""
    return ComponentError(ErrorSeverity.ADVISORY, error, message or "")


## Assertions ##################################################################


def assert_precondition(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a PreconditionError. This
    should be used when a component requires that a precondition is met before
    continuing.
    """
    if not condition:
        raise PreconditionError(message)


def assert_verified(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a VerificationError. This
    should be used when verifying the state of a resource in the cluster.
    """
    if not condition:
        raise VerificationError(message)


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when a component requires that certain conditions be true in the
    cluster spec or library config.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as creating a resource)
    must succeed.
    """
    if not condition:
        raise ClusterError(message)
