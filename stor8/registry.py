"""
The ComponentRegistry holds the named components that a driver walks each
cycle and resolves their execution order.

Registries are normally constructed explicitly and handed to a
ReconciliationDriver. For bootstrap-time self registration a process-wide
default registry is also available. Its lifecycle is:

1. Populated during process initialization via register() before the first
   driver run.
2. Read (never mutated) while cycles run.
3. Torn down with reset_default_registry(), which tests use to isolate
   themselves.
"""

# Standard
from typing import Dict, Iterator, List, Optional
import threading

# First Party
import alog

# Local
from .component import Component
from .events import EventRecorderBase
from .exceptions import RegistrationError
from .platform import PlatformClientBase
from .version import PlatformVersion

log = alog.use_channel("REGISTRY")


class ComponentRegistry:
    """Ordered collection of uniquely named components. Registering a second
    component under an existing name is rejected with a RegistrationError.
    """

    def __init__(self):
        self._components: Dict[str, Component] = {}
        self._registration_order: Dict[str, int] = {}
        # Keyed by the component instance since it may be registered under an
        # explicit name
        self._initialized_with: Dict[Component, tuple] = {}

    def register(self, component: Component, name: Optional[str] = None):
        """Add a component to the registry

        Args:
            component:  Component
                The component instance to add
            name:  Optional[str]
                The key to register under. Defaults to the component's name.
        """
        name = name or component.name
        if name in self._components:
            raise RegistrationError(
                f"Component [{name}] is already registered as "
                + f"{self._components[name]}"
            )
        log.debug2("Registering %s as [%s]", component, name)
        self._registration_order[name] = len(self._registration_order)
        self._components[name] = component

    def list(self) -> List[Component]:
        """All registered components sorted by (priority, registration order)"""
        return [self._components[name] for name in self.names()]

    def get(self, name: str) -> Optional[Component]:
        return self._components.get(name)

    def names(self) -> List[str]:
        """Registered names in execution order"""
        return sorted(
            self._components,
            key=lambda name: (
                self._components[name].priority,
                self._registration_order[name],
            ),
        )

    def __len__(self) -> int:
        return len(self._components)

    def __contains__(self, name: str) -> bool:
        return name in self._components

    def __iter__(self) -> Iterator[Component]:
        return iter(self.list())

    def initialize_components(
        self,
        platform_client: PlatformClientBase,
        platform_version: PlatformVersion,
        recorder: Optional[EventRecorderBase] = None,
    ):
        """Initialize every component that has not yet seen this platform
        version. Components are initialized once, and again only when the
        platform version or the platform client changes.
        """
        for component in self._components.values():
            self.initialize_component(
                component, platform_client, platform_version, recorder
            )

    def initialize_component(
        self,
        component: Component,
        platform_client: PlatformClientBase,
        platform_version: PlatformVersion,
        recorder: Optional[EventRecorderBase] = None,
    ) -> bool:
        """Initialize a single registered component if it has not yet seen
        this platform version and client. A component whose initialize raises
        is not marked as initialized, so the next pass tries again.

        Returns:
            initialized:  bool
                True if initialize was called
        """
        previous_client, previous_version = self._initialized_with.get(
            component, (None, None)
        )
        if previous_client is platform_client and previous_version == platform_version:
            return False
        log.debug(
            "Initializing [%s] for platform version %s",
            component.name,
            platform_version,
        )
        component.initialize(platform_client, platform_version, recorder)
        self._initialized_with[component] = (platform_client, platform_version)
        return True


## Default Registry ############################################################

_default_registry: Optional[ComponentRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> ComponentRegistry:
    """Get the process-wide registry, creating it if needed"""
    global _default_registry  # pylint: disable=global-statement
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = ComponentRegistry()
        return _default_registry


def register(component: Component, name: Optional[str] = None) -> Component:
    """Register a component with the process-wide registry"""
    default_registry().register(component, name)
    return component


def reset_default_registry():
    """Drop the process-wide registry. The next access creates a fresh one."""
    global _default_registry  # pylint: disable=global-statement
    with _default_registry_lock:
        _default_registry = None
