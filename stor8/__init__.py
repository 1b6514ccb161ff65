"""
Package exports
"""

# Local
from . import config, status, validators
from .cluster import ClusterSpec
from .component import Component
from .components import register_default_components
from .decorator import component
from .driver import ClusterPhase, ComponentFailure, CycleResult, ReconciliationDriver
from .events import (
    EventType,
    LoggingEventRecorder,
    MemoryEventRecorder,
    PlatformEventRecorder,
)
from .exceptions import (
    ErrorSeverity,
    assert_cluster,
    assert_config,
    assert_precondition,
    assert_verified,
    advisory,
    critical,
)
from .platform import DryRunPlatformClient, KubePlatformClient, PlatformClientBase
from .registry import ComponentRegistry, default_registry, register
from .version import PlatformVersion
from .versioned_resource import (
    CRDDescriptor,
    CRDVersion,
    ResourceScope,
    SchemaVariant,
    VersionedResourceAdapter,
)
from .waiter import ConvergenceWaiter, ProbeResult, ProbeState, wait_for_convergence
