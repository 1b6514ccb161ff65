"""
Decorator for making the authoring of components easier
"""

# Standard
from typing import Callable, Optional, Type

# Local
from .component import Component


def component(
    name: str,
    priority: Optional[int] = None,
    revalidate_every_cycle: Optional[bool] = None,
) -> Callable[[Type], Type]:
    """The @component decorator is the primary entrypoint for creating a
    stor8.Component. It ensures the wrapped type's interface matches the
    expected Component interface, including the "name" class attribute.

    Args:
        name:  str
            The name string will be set as the class property for the wrapped
            class
        priority:  Optional[int]
            If given, the execution order key for the wrapped class
        revalidate_every_cycle:  Optional[bool]
            If given, the revalidation policy for the wrapped class

    Returns:
        decorator:  Callable[[Type[Component]], Type[Component]]
            The decorator function that will be invoked on construction of
            decorated classes
    """

    def decorator(cls: Type[Component]) -> Type[Component]:
        cls.name = name
        if priority is not None:
            cls.priority = priority
        if revalidate_every_cycle is not None:
            cls.revalidate_every_cycle = revalidate_every_cycle
        return cls

    return decorator
