"""
The ReconciliationDriver runs a single reconcile cycle: it walks the
registered components in priority order, applies the enable / pause /
reconcile / delete semantics to each and aggregates the outcome.

The driver holds no state between cycles beyond what each component keeps
in its own flags, so it is safe to construct a fresh driver per cycle.
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union
import logging

# First Party
import alog

# Local
from . import config, constants
from .cluster import ClusterSpec
from .events import EventRecorderBase, EventType, LoggingEventRecorder
from .exceptions import ErrorSeverity, get_severity
from .log_format import Stor8JsonFormatter
from .platform import DryRunPlatformClient, KubePlatformClient, PlatformClientBase
from .registry import ComponentRegistry, default_registry
from .utils import generate_id
from .version import PlatformVersion

log = alog.use_channel("DRIVER")


## Data models #################################################################


class ClusterPhase(Enum):
    """The overall verdict of a cycle"""

    # Every enabled component reconciled without error
    CONVERGED = "Converged"
    # The cycle ran to completion but some components reported advisory errors
    CONVERGING = "Converging"
    # A component reported a critical error and the cycle was aborted
    BLOCKED = "Blocked"


class ComponentOperation(Enum):
    INITIALIZE = "initialize"
    # Evaluating the enable and pause predicates
    EVALUATE = "evaluate"
    RECONCILE = "reconcile"
    DELETE = "delete"


@dataclass
class ComponentFailure:
    """A single failure reported by a component during a cycle"""

    component: str
    operation: ComponentOperation
    error: Exception
    severity: ErrorSeverity

    @property
    def is_critical(self) -> bool:
        return self.severity == ErrorSeverity.CRITICAL

    def __str__(self) -> str:
        return f"{self.component} ({self.operation.value}): {self.error}"


@dataclass
class CycleResult:
    """CycleResult is the aggregate outcome of one reconcile cycle"""

    cycle_id: str
    platform_version: Optional[PlatformVersion] = None
    # Names of components whose reconcile was invoked, in invocation order
    reconciled: List[str] = field(default_factory=list)
    # Names of components whose delete was invoked, in invocation order
    deleted: List[str] = field(default_factory=list)
    # Names of components skipped because they are paused for migration
    paused: List[str] = field(default_factory=list)
    # Names of components never reached because the cycle was aborted
    unstarted: List[str] = field(default_factory=list)
    # The failure that aborted the cycle, if any
    critical_failure: Optional[ComponentFailure] = None
    # All non-critical failures in the order they were encountered
    advisory_failures: List[ComponentFailure] = field(default_factory=list)

    @property
    def phase(self) -> ClusterPhase:
        if self.critical_failure is not None:
            return ClusterPhase.BLOCKED
        if self.advisory_failures:
            return ClusterPhase.CONVERGING
        return ClusterPhase.CONVERGED

    @property
    def succeeded(self) -> bool:
        """A cycle succeeds unless it was aborted by a critical failure"""
        return self.critical_failure is None

    @property
    def failures(self) -> List[ComponentFailure]:
        """All failures, critical last"""
        failures = list(self.advisory_failures)
        if self.critical_failure is not None:
            failures.append(self.critical_failure)
        return failures


## ReconciliationDriver ########################################################


class ReconciliationDriver:
    """The control loop body that walks the registry once per cycle"""

    def __init__(
        self,
        registry: Optional[ComponentRegistry] = None,
        platform_client: Optional[PlatformClientBase] = None,
        recorder: Optional[EventRecorderBase] = None,
        manage_logging: bool = False,
    ):
        """Construct with the collaborators for the cycle

        Args:
            registry:  Optional[ComponentRegistry]
                The components to walk. Defaults to the process-wide registry.
            platform_client:  Optional[PlatformClientBase]
                The client handed to components at initialization. Defaults
                to a dry run client if the dry_run config is set, otherwise a
                live kubernetes client.
            recorder:  Optional[EventRecorderBase]
                The sink for component events. Defaults to logging only.
            manage_logging:  bool
                If True, reconfigure logging at the start of every cycle
                based on the cluster's log annotations
        """
        self.registry = registry if registry is not None else default_registry()
        self.platform_client = platform_client or self.setup_platform_client()
        self.recorder = recorder or LoggingEventRecorder()
        self.manage_logging = manage_logging

    @staticmethod
    def setup_platform_client() -> PlatformClientBase:
        if config.dry_run:
            log.debug("Using DryRunPlatformClient")
            return DryRunPlatformClient()
        log.debug("Using KubePlatformClient")
        return KubePlatformClient()

    @alog.timed_function(log.debug, "Cycle finished in: ")
    def run_cycle(
        self,
        spec: Union[ClusterSpec, dict],
        platform_version: Optional[Union[PlatformVersion, str]] = None,
    ) -> CycleResult:
        """Run one reconcile cycle. Component errors never propagate out of
        this function; they are classified and reported in the result.

        Args:
            spec:  Union[ClusterSpec, dict]
                The desired state of the cluster
            platform_version:  Optional[Union[PlatformVersion, str]]
                The control plane version. Fetched from the platform client if
                not given.

        Returns:
            result:  CycleResult
                The aggregate outcome of the cycle
        """
        if not isinstance(spec, ClusterSpec):
            spec = ClusterSpec(spec)
        if platform_version is None:
            platform_version = self.platform_client.get_version()
        platform_version = PlatformVersion.parse(platform_version)

        cycle_id = generate_id()
        if self.manage_logging:
            self.configure_logging(spec, cycle_id)
        log.info("[%s] Starting cycle for %s at %s", cycle_id, spec, platform_version)

        result = CycleResult(cycle_id=cycle_id, platform_version=platform_version)
        components = self.registry.list()
        init_failures = self._initialize_components(components, platform_version)

        for idx, component in enumerate(components):
            failure = init_failures.get(component.name)
            if failure is not None:
                self._record_setup_failure(component, failure, result)
            else:
                failure = self._run_component(component, spec, result)
            if failure is not None and failure.is_critical:
                result.critical_failure = failure
                result.unstarted = [comp.name for comp in components[idx + 1 :]]
                log.warning(
                    "[%s] Aborting cycle on critical failure in %s. Skipped: %s",
                    cycle_id,
                    component,
                    result.unstarted,
                )
                break

        log.info(
            "[%s] Cycle complete with phase %s (%d advisory failure(s))",
            cycle_id,
            result.phase.value,
            len(result.advisory_failures),
        )
        return result

    ## Implementation Details ##################################################

    def _initialize_components(
        self, components: List, platform_version: PlatformVersion
    ) -> Dict[str, ComponentFailure]:
        """Initialize every component up front. A failure is held until the
        cycle reaches the component so that it is classified in priority
        order.
        """
        failures = {}
        for component in components:
            try:
                self.registry.initialize_component(
                    component, self.platform_client, platform_version, self.recorder
                )
            except Exception as err:  # pylint: disable=broad-except
                failures[component.name] = self._make_failure(
                    component, ComponentOperation.INITIALIZE, err
                )
        return failures

    def _run_component(
        self, component, spec: ClusterSpec, result: CycleResult
    ) -> Optional[ComponentFailure]:
        """Evaluate the predicates of one component and reconcile or delete it"""
        try:
            enabled = component.is_enabled(spec)
            paused = enabled and component.is_paused_for_migration(spec)
        except Exception as err:  # pylint: disable=broad-except
            failure = self._make_failure(component, ComponentOperation.EVALUATE, err)
            self._record_setup_failure(component, failure, result)
            return failure

        if not enabled:
            self._delete_component(component, spec, result)
            return None
        if paused:
            log.debug("[%s] %s is paused for migration", result.cycle_id, component)
            result.paused.append(component.name)
            return None
        return self._reconcile_component(component, spec, result)

    @staticmethod
    def _make_failure(
        component, operation: ComponentOperation, err: Exception
    ) -> ComponentFailure:
        failure = ComponentFailure(
            component=component.name,
            operation=operation,
            error=err,
            severity=get_severity(err),
        )
        log.warning(
            "Failed to %s %s [%s]: %s",
            operation.value,
            component,
            failure.severity.value,
            err,
            exc_info=True,
        )
        return failure

    def _record_setup_failure(
        self, component, failure: ComponentFailure, result: CycleResult
    ):
        self.recorder.record(
            EventType.WARNING,
            constants.FAILED_COMPONENT_REASON,
            f"Failed to setup {component.name}. {failure.error}",
        )
        if not failure.is_critical:
            result.advisory_failures.append(failure)

    def _reconcile_component(
        self, component, spec: ClusterSpec, result: CycleResult
    ) -> Optional[ComponentFailure]:
        result.reconciled.append(component.name)
        try:
            with alog.ContextTimer(log.debug2, "Reconcile duration for %s: ", component):
                component.reconcile(spec)
        except Exception as err:  # pylint: disable=broad-except
            failure = self._make_failure(component, ComponentOperation.RECONCILE, err)
            self._record_setup_failure(component, failure, result)
            return failure
        return None

    def _delete_component(self, component, spec: ClusterSpec, result: CycleResult):
        result.deleted.append(component.name)
        try:
            with alog.ContextTimer(log.debug2, "Delete duration for %s: ", component):
                component.delete(spec)
        except Exception as err:  # pylint: disable=broad-except
            # Teardown failures never abort the cycle
            log.warning("Failed to delete %s: %s", component, err, exc_info=True)
            result.advisory_failures.append(
                ComponentFailure(
                    component=component.name,
                    operation=ComponentOperation.DELETE,
                    error=err,
                    severity=ErrorSeverity.ADVISORY,
                )
            )
            self.recorder.record(
                EventType.WARNING,
                constants.FAILED_COMPONENT_REASON,
                f"Failed to cleanup {component.name}. {err}",
            )
            return
        component.mark_deleted()

    @classmethod
    def configure_logging(cls, spec: Union[ClusterSpec, dict], cycle_id: str):
        """Configure the logging for a given cycle

        Args:
            spec:  Union[ClusterSpec, dict]
                The cluster to get annotation overrides from
            cycle_id:  str
                The unique id for the cycle
        """
        if isinstance(spec, ClusterSpec):
            manifest = spec.to_dict()
        else:
            manifest = dict(spec)
        annotations = manifest.get("metadata", {}).get("annotations") or {}
        default_level = annotations.get(
            constants.LOG_DEFAULT_LEVEL_NAME, config.log_level
        )
        filters = annotations.get(constants.LOG_FILTERS_NAME, config.log_filters)
        log_json = annotations.get(constants.LOG_JSON_NAME, str(config.log_json))
        log_thread_id = annotations.get(
            constants.LOG_THREAD_ID_NAME, str(config.log_thread_id)
        )

        # Convert boolean args
        log_json = (log_json or "").lower() == "true"
        log_thread_id = (log_thread_id or "").lower() == "true"

        # Keep the old handler so that any handler set up by the hosting
        # process is preserved
        handler_generator = None
        if logging.root.handlers:
            old_handler = logging.root.handlers[0]

            def handler_generator():
                return old_handler

        alog.configure(
            default_level=default_level,
            filters=filters,
            formatter=Stor8JsonFormatter(manifest, cycle_id)
            if log_json
            else "pretty",
            thread_id=log_thread_id,
            handler_generator=handler_generator,
        )
