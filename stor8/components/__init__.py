"""
Concrete components shipped with the library
"""

# Standard
from typing import Optional

# Local
from ..registry import ComponentRegistry, default_registry
from .storage_crd import StorageCRDComponent


def register_default_components(
    registry: Optional[ComponentRegistry] = None,
) -> ComponentRegistry:
    """Register an instance of every shipped component with the given registry
    (or the process-wide default)
    """
    registry = registry if registry is not None else default_registry()
    registry.register(StorageCRDComponent())
    return registry
