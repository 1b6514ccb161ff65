"""
Component base class for building the units the reconciliation driver runs
"""

# Standard
from typing import Optional, Set
import abc

# First Party
import alog

# Local
from . import config
from .cluster import ClusterSpec
from .constants import DEFAULT_COMPONENT_PRIORITY
from .events import EventRecorderBase, EventType, LoggingEventRecorder
from .platform import PlatformClientBase
from .utils import abstractclassproperty
from .version import PlatformVersion

log = alog.use_channel("COMP-BASE")


class Component(abc.ABC):
    """
    This file defines the top-level interface for a "Component" in the
    reconciliation ecosystem. Each Component is an independently reconciled
    unit responsible for one external subsystem of the storage platform
    (a CRD, a CSI deployment, the monitoring stack, ...).

    Components are constructed once at process start, initialized with the
    environment facts, then reconciled or deleted once per cycle for the life
    of the process. Any state a component keeps between cycles lives in its
    lifecycle flags, which are cleared by mark_deleted.
    """

    # Execution order key. Lower runs first.
    priority: int = DEFAULT_COMPONENT_PRIORITY

    # Whether reconcile should re-check resources it already set up instead of
    # trusting its lifecycle flags. None means use the library config.
    revalidate_every_cycle: Optional[bool] = None

    @abstractclassproperty
    def name(self):
        """All Components must implement a name class attribute"""

    def __init__(self):
        # Ensure that the name property is defined by accessing it
        self.name  # noqa: B018

        self.platform_client: Optional[PlatformClientBase] = None
        self.platform_version: Optional[PlatformVersion] = None
        self.recorder: EventRecorderBase = LoggingEventRecorder()
        self._flags: Set[str] = set()

    def __str__(self):
        return f"Component({self.name})"

    def __repr__(self):
        return str(self)

    ## Lifecycle ###############################################################

    def initialize(
        self,
        platform_client: PlatformClientBase,
        platform_version: PlatformVersion,
        recorder: Optional[EventRecorderBase] = None,
    ):
        """Store the environment facts this component needs. Called before
        first use and again if the platform version changes. Must not mutate
        the cluster.

        Args:
            platform_client:  PlatformClientBase
                The client used for all cluster interaction
            platform_version:  PlatformVersion
                The control plane version
            recorder:  Optional[EventRecorderBase]
                The sink for events about this component
        """
        log.debug2("Initializing %s at version %s", self, platform_version)
        self.platform_client = platform_client
        self.platform_version = platform_version
        if recorder is not None:
            self.recorder = recorder

    def is_enabled(self, spec: ClusterSpec) -> bool:  # pylint: disable=unused-argument
        """Pure predicate deciding whether this component should be reconciled
        (True) or torn down (False) for the given spec. Enabled by default.
        """
        return True

    def is_paused_for_migration(  # pylint: disable=unused-argument
        self, spec: ClusterSpec
    ) -> bool:
        """Pure predicate which, when True, causes the driver to skip this
        component entirely for the cycle
        """
        return False

    @abc.abstractmethod
    def reconcile(self, spec: ClusterSpec):
        """Converge the resources owned by this component toward the spec.
        Must be idempotent. Raise to report failure; wrap the error with
        stor8.exceptions.critical to abort the rest of the cycle.
        """

    @abc.abstractmethod
    def delete(self, spec: ClusterSpec):
        """Best-effort teardown of the resources owned by this component.
        Resources that are already absent are not an error. Implementations
        should call mark_deleted once teardown succeeds.
        """

    def mark_deleted(self):
        """Reset all lifecycle flags, regardless of whether the external
        resources still exist
        """
        if self._flags:
            log.debug2("Clearing flags for %s: %s", self, sorted(self._flags))
        self._flags.clear()

    ## Flags ###################################################################

    def set_flag(self, flag: str):
        self._flags.add(flag)

    def has_flag(self, flag: str) -> bool:
        return flag in self._flags

    def clear_flag(self, flag: str):
        self._flags.discard(flag)

    @property
    def flags(self) -> Set[str]:
        return set(self._flags)

    def should_revalidate(self) -> bool:
        """Resolve the revalidation policy for this component"""
        if self.revalidate_every_cycle is not None:
            return self.revalidate_every_cycle
        return bool(config.revalidate_established)

    ## Helpers #################################################################

    def record_event(self, event_type: EventType, reason: str, message: str):
        """Send an event to the configured recorder"""
        self.recorder.record(event_type, reason, message)
