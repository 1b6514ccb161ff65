"""
The convergence waiter is the bounded-retry primitive used to decide whether an
asynchronous, eventually-consistent change has taken effect. A probe performs
one observation and reports one of three outcomes:

* DONE: the condition has converged. The probe's payload is returned.
* RETRY: the condition has not converged yet. The pending reason is kept so
  that a timeout can report what failed to converge.
* FATAL: the condition can never converge. The error is raised immediately.

The waiter invokes the probe immediately, then once per poll interval until it
converges, fails, the timeout elapses, or the cancellation token is set.
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
import threading
import time

# First Party
import alog

# Local
from .exceptions import (
    ConvergenceCancelledError,
    ConvergenceFatalError,
    ConvergenceTimeoutError,
    Stor8Error,
)

log = alog.use_channel("WAITR")


## Probe Results ###############################################################


class ProbeState(Enum):
    """The tri-state outcome of a single probe invocation"""

    DONE = "done"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class ProbeResult:
    """The outcome of one probe invocation"""

    state: ProbeState
    value: Any = None
    reason: str = ""
    error: Optional[Exception] = None

    @classmethod
    def done(cls, value: Any = None) -> "ProbeResult":
        return cls(state=ProbeState.DONE, value=value)

    @classmethod
    def retry(cls, reason: str) -> "ProbeResult":
        return cls(state=ProbeState.RETRY, reason=reason)

    @classmethod
    def fatal(cls, error: Exception) -> "ProbeResult":
        return cls(state=ProbeState.FATAL, error=error, reason=str(error))


# Type definition for the signature of a convergence probe
CONVERGENCE_PROBE = Callable[[], ProbeResult]  # pylint: disable=invalid-name


## Waiter ######################################################################


class ConvergenceWaiter:
    """A ConvergenceWaiter holds the bounds for a wait so that it can be
    configured once and used for many probes. Each call to wait() is strictly
    sequential.
    """

    def __init__(self, timeout: float, poll_interval: float):
        """Construct with the wait bounds

        Args:
            timeout:  float
                Total number of seconds to keep probing
            poll_interval:  float
                Number of seconds to sleep between probes. Must be positive and
                no larger than the timeout.
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive. Got {poll_interval}")
        if poll_interval > timeout:
            raise ValueError(
                f"poll_interval ({poll_interval}) must not exceed timeout ({timeout})"
            )
        self.timeout = timeout
        self.poll_interval = poll_interval

    def wait(
        self,
        probe: CONVERGENCE_PROBE,
        cancel: Optional[threading.Event] = None,
        description: str = "",
    ) -> Any:
        """Probe until convergence, failure, timeout, or cancellation

        Args:
            probe:  CONVERGENCE_PROBE
                The zero-argument callable performing one observation
            cancel:  Optional[threading.Event]
                If given, setting this event interrupts the wait
            description:  str
                Human readable description of what is being waited on, used in
                logs and errors

        Returns:
            value:  Any
                The payload of the DONE probe result
        """
        description = description or getattr(probe, "__name__", "probe")
        deadline = time.monotonic() + self.timeout
        attempts = 0
        while True:
            attempts += 1
            log.debug3("[%s] attempt %d", description, attempts)
            result = probe()

            if result.state == ProbeState.DONE:
                log.debug2("[%s] converged after %d attempt(s)", description, attempts)
                return result.value

            if result.state == ProbeState.FATAL:
                log.debug("[%s] fatal probe result: %s", description, result.error)
                if isinstance(result.error, Stor8Error):
                    raise result.error
                raise ConvergenceFatalError(
                    f"{description}: {result.reason}"
                ) from result.error

            log.debug2("[%s] not converged: %s", description, result.reason)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                log.debug("[%s] timed out: %s", description, result.reason)
                raise ConvergenceTimeoutError(
                    last_reason=result.reason,
                    attempts=attempts,
                    timeout=self.timeout,
                    description=description,
                )

            if self._sleep(min(self.poll_interval, remaining), cancel):
                log.debug("[%s] cancelled after %d attempt(s)", description, attempts)
                raise ConvergenceCancelledError(
                    f"{description}: cancelled while waiting. "
                    + f"Last pending reason: {result.reason}"
                )

    @staticmethod
    def _sleep(duration: float, cancel: Optional[threading.Event]) -> bool:
        """Sleep for the duration, returning True if cancelled"""
        if cancel is None:
            time.sleep(duration)
            return False
        return cancel.wait(duration)


def wait_for_convergence(
    probe: CONVERGENCE_PROBE,
    timeout: float,
    poll_interval: float,
    cancel: Optional[threading.Event] = None,
    description: str = "",
) -> Any:
    """Functional shorthand for ConvergenceWaiter(timeout, poll_interval).wait()"""
    return ConvergenceWaiter(timeout, poll_interval).wait(
        probe, cancel=cancel, description=description
    )
