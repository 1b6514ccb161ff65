"""
This defines the base class for all PlatformClient types.
"""

# Standard
from typing import List, Optional, Tuple
import abc

# Local
from ..version import PlatformVersion


class PlatformClientBase(abc.ABC):
    """
    Base class for platform clients which are responsible for carrying out all
    reads and writes against the orchestration platform on behalf of
    components.

    All write operations are idempotent: creating a resource that already
    exists and deleting a resource that is already absent both succeed without
    reporting a change.
    """

    @abc.abstractmethod
    def create(self, resource_definition: dict) -> Tuple[bool, bool]:
        """The create function ensures that the given resource exists, without
        modifying it if it is already present.

        Args:
            resource_definition:  dict
                The resource object dict to create in the cluster

        Returns:
            success:  bool
                Whether or not the create succeeded. A resource that already
                exists is a success.
            created:  bool
                Whether or not the resource was newly created
        """

    @abc.abstractmethod
    def apply(self, resource_definition: dict) -> Tuple[bool, bool]:
        """The apply function creates the given resource or updates it to match
        the given definition.

        Args:
            resource_definition:  dict
                The resource object dict to apply to the cluster

        Returns:
            success:  bool
                Whether or not the apply succeeded
            changed:  bool
                Whether or not the apply resulted in changes
        """

    @abc.abstractmethod
    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """The delete function ensures that the named resource is absent

        Args:
            kind:  str
                The kind of the object to delete
            name:  str
                The name of the object to delete
            namespace:  Optional[str]
                The namespace of the object or None for cluster scoped objects
            api_version:  Optional[str]
                The api_version of the resource kind

        Returns:
            success:  bool
                Whether or not the delete succeeded. A resource that is already
                absent is a success.
            changed:  bool
                Whether or not a resource was actually removed
        """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """The get_object_current_state function fetches the current state of a
        given object by name

        Args:
            kind:  str
                The kind of the object to fetch
            name:  str
                The full name of the object to fetch
            namespace:  Optional[str]
                The namespace to search for the object
            api_version:  Optional[str]
                The api_version of the resource kind to fetch

        Returns:
            success:  bool
                Whether or not the state fetch operation succeeded
            current_state:  dict or None
                The dict representation of the current object's configuration,
                or None if not present
        """

    @abc.abstractmethod
    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """The filter_objects_current_state function fetches a list of objects
        that match either/both the label or field selector

        Args:
            kind:  str
                The kind of the object to fetch
            namespace:  str
                The namespace to search for the object
            api_version:  str
                The api_version of the resource kind to fetch
            label_selector:  str
                The label_selector to filter the resources
            field_selector:  str
                The field_selector to filter the resources

        Returns:
            success:  bool
                Whether or not the state fetch operation succeeded
            current_state:  List[dict]
                A list of dict representations for the objects configuration,
                or an empty list if no objects match
        """

    @abc.abstractmethod
    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """Set the status for an object in the cluster

        Args:
            kind:  str
                The kind of the object
            name:  str
                The name of the object
            namespace:  Optional[str]
                The namespace of the object. If None the object is cluster
                scoped
            status:  dict
                The status object to set onto the given object
            api_version:  str
                The api_version of the resource to update

        Returns:
            success:  bool
                Whether or not the status update succeeded
            changed:  bool
                Whether or not the status update resulted in a change
        """

    @abc.abstractmethod
    def get_version(self) -> PlatformVersion:
        """Report the version of the platform's control plane

        Returns:
            platform_version:  PlatformVersion
                The parsed control plane version
        """
