"""
The VersionedResourceAdapter creates an externally visible resource whose
schema depends on the version of the platform's control plane, then blocks
until the platform reports the resource as usable.

An adapter holds an ordered list of (minimum version, descriptor) variants.
For a given platform version the variant with the highest threshold that is
not above the platform version is selected. Every variant describes the same
logical resource (group, kind and plural name), so only one is ever active.
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple
import threading

# First Party
import alog

# Local
from . import config, constants
from .exceptions import assert_cluster, assert_config
from .platform import PlatformClientBase
from .validators import crd_established_probe
from .version import PlatformVersion
from .waiter import CONVERGENCE_PROBE, wait_for_convergence

log = alog.use_channel("VRSRC")


## Descriptors #################################################################


class ResourceScope(Enum):
    """Whether instances of the resource live in a namespace"""

    CLUSTER = "Cluster"
    NAMESPACED = "Namespaced"


@dataclass(frozen=True)
class CRDVersion:
    """One served version of a custom resource"""

    name: str
    served: bool
    storage: bool


@dataclass(frozen=True)
class CRDDescriptor:  # pylint: disable=too-many-instance-attributes
    """Static description of one schema variant of a custom resource"""

    group: str
    kind: str
    plural: str
    singular: str
    versions: Tuple[CRDVersion, ...]
    scope: ResourceScope = ResourceScope.CLUSTER
    short_names: Tuple[str, ...] = field(default_factory=tuple)
    api_version: str = constants.CRD_API_VERSION_V1
    preserve_unknown_fields: bool = False

    def __post_init__(self):
        # Normalize sequences so the descriptor stays hashable
        object.__setattr__(self, "versions", tuple(self.versions))
        object.__setattr__(self, "short_names", tuple(self.short_names))
        self.validate()

    @property
    def name(self) -> str:
        """The name of the CustomResourceDefinition object"""
        return f"{self.plural}.{self.group}"

    @property
    def storage_version(self) -> CRDVersion:
        return [version for version in self.versions if version.storage][0]

    def validate(self):
        """Ensure exactly one version is both served and the storage version"""
        assert_config(self.versions, f"{self.name} declares no versions")
        assert_config(
            len({version.name for version in self.versions}) == len(self.versions),
            f"{self.name} declares duplicate versions",
        )
        storage_versions = [version for version in self.versions if version.storage]
        assert_config(
            len(storage_versions) == 1,
            f"{self.name} must declare exactly one storage version. "
            + f"Found {[version.name for version in storage_versions]}",
        )
        assert_config(
            storage_versions[0].served,
            f"{self.name} storage version {storage_versions[0].name} is not served",
        )
        assert_config(
            self.api_version
            in [constants.CRD_API_VERSION_V1, constants.CRD_API_VERSION_V1BETA1],
            f"Unsupported CRD apiVersion {self.api_version}",
        )

    def to_manifest(self) -> dict:
        """Build the CustomResourceDefinition manifest for this variant"""
        names = {
            "singular": self.singular,
            "plural": self.plural,
            "kind": self.kind,
        }
        if self.short_names:
            names["shortNames"] = list(self.short_names)

        versions = []
        for version in self.versions:
            version_spec = {
                "name": version.name,
                "served": version.served,
                "storage": version.storage,
            }
            if (
                self.api_version == constants.CRD_API_VERSION_V1
                and self.preserve_unknown_fields
            ):
                version_spec["schema"] = {
                    "openAPIV3Schema": {"x-kubernetes-preserve-unknown-fields": True}
                }
            versions.append(version_spec)

        return {
            "apiVersion": self.api_version,
            "kind": constants.CRD_KIND,
            "metadata": {"name": self.name},
            "spec": {
                "group": self.group,
                "scope": self.scope.value,
                "names": names,
                "versions": versions,
            },
        }


@dataclass(frozen=True)
class SchemaVariant:
    """A descriptor paired with the lowest platform version it applies to"""

    min_version: PlatformVersion
    descriptor: CRDDescriptor

    def __post_init__(self):
        object.__setattr__(self, "min_version", PlatformVersion.parse(self.min_version))


## Adapter #####################################################################


class VersionedResourceAdapter:
    """Select, submit, and wait for the schema variant matching the platform
    version
    """

    def __init__(
        self,
        variants: Sequence[SchemaVariant],
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        """
        Args:
            variants:  Sequence[SchemaVariant]
                The schema variants. Thresholds must be unique and every
                variant must describe the same group, kind and plural.
            timeout:  Optional[float]
                Seconds to wait for the resource to be established. Defaults
                to crd.validate_timeout_seconds.
            poll_interval:  Optional[float]
                Seconds between readiness checks. Defaults to
                crd.validate_interval_seconds.
        """
        assert_config(variants, "At least one schema variant is required")
        self.variants: List[SchemaVariant] = sorted(
            variants, key=lambda variant: variant.min_version
        )
        thresholds = [variant.min_version for variant in self.variants]
        assert_config(
            len(set(thresholds)) == len(thresholds),
            f"Duplicate schema variant thresholds: {[str(t) for t in thresholds]}",
        )
        identities = {
            (variant.descriptor.group, variant.descriptor.kind, variant.descriptor.plural)
            for variant in self.variants
        }
        assert_config(
            len(identities) == 1,
            f"Schema variants describe different resources: {sorted(identities)}",
        )
        self.timeout = timeout
        self.poll_interval = poll_interval

    @property
    def resource_name(self) -> str:
        return self.variants[0].descriptor.name

    def select(self, platform_version: PlatformVersion) -> CRDDescriptor:
        """Pick the descriptor with the highest threshold at or below the
        platform version
        """
        platform_version = PlatformVersion.parse(platform_version)
        selected = None
        for variant in self.variants:
            if variant.min_version <= platform_version:
                selected = variant
        assert_config(
            selected is not None,
            f"No schema variant of {self.resource_name} supports platform "
            + f"version {platform_version}",
        )
        log.debug2(
            "Selected %s variant (>= %s) of %s for platform %s",
            selected.descriptor.api_version,
            selected.min_version,
            self.resource_name,
            platform_version,
        )
        return selected.descriptor

    @alog.logged_function(log.debug2)
    def ensure(
        self,
        platform_client: PlatformClientBase,
        platform_version: PlatformVersion,
        cancel: Optional[threading.Event] = None,
    ) -> dict:
        """Create the selected variant if needed and block until the platform
        reports it established. An already existing resource is not an error.

        Args:
            platform_client:  PlatformClientBase
                The client used to create and observe the resource
            platform_version:  PlatformVersion
                The control plane version used to select the variant
            cancel:  Optional[threading.Event]
                If set while waiting, the wait is abandoned

        Returns:
            current_state:  dict
                The established resource as reported by the platform
        """
        descriptor = self.select(platform_version)
        success, created = platform_client.create(descriptor.to_manifest())
        assert_cluster(success, f"Failed to create {descriptor.name}")
        log.debug(
            "%s %s", "Created" if created else "Found existing", descriptor.name
        )

        timeout = (
            self.timeout
            if self.timeout is not None
            else config.crd.validate_timeout_seconds
        )
        poll_interval = (
            self.poll_interval
            if self.poll_interval is not None
            else config.crd.validate_interval_seconds
        )
        return wait_for_convergence(
            self.established_probe(platform_client, descriptor),
            timeout=timeout,
            poll_interval=poll_interval,
            cancel=cancel,
            description=f"validate {descriptor.name}",
        )

    @staticmethod
    def established_probe(
        platform_client: PlatformClientBase, descriptor: CRDDescriptor
    ) -> CONVERGENCE_PROBE:
        """Build the probe that checks whether the resource is established"""
        return crd_established_probe(
            platform_client, descriptor.name, descriptor.api_version
        )
