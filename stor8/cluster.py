"""
Read-only accessors and environment predicates over the StorageCluster spec
that drives a reconciliation cycle
"""

# Standard
from typing import Any, Optional
import copy

# First Party
import aconfig
import alog

# Local
from . import constants
from .utils import nested_get, parse_bool

log = alog.use_channel("CLSTR")


class ClusterSpec:
    """The desired state input to a reconcile cycle. The wrapped manifest is
    copied on construction and every value handed out is a copy, so nothing
    downstream can mutate the spec a cycle is running against.
    """

    def __init__(self, cr_manifest: dict):
        """Construct from the StorageCluster custom resource

        Args:
            cr_manifest:  dict
                The full manifest. Must contain kind, apiVersion and
                metadata.name.
        """
        if isinstance(cr_manifest, ClusterSpec):
            cr_manifest = cr_manifest.to_dict()
        self._validate_cr(cr_manifest)
        self.__cr_manifest = copy.deepcopy(dict(cr_manifest))

    ## Properties ##############################################################

    @property
    def cr_manifest(self) -> aconfig.Config:
        """A copy of the full manifest"""
        return self._as_config(self.__cr_manifest)

    @property
    def spec(self) -> aconfig.Config:
        """The spec section of the manifest"""
        return self._as_config(self.__cr_manifest.get("spec") or {})

    @property
    def metadata(self) -> aconfig.Config:
        return self._as_config(self.__cr_manifest["metadata"])

    @property
    def kind(self) -> str:
        return self.__cr_manifest["kind"]

    @property
    def api_version(self) -> str:
        return self.__cr_manifest["apiVersion"]

    @property
    def name(self) -> str:
        return self.__cr_manifest["metadata"]["name"]

    @property
    def namespace(self) -> Optional[str]:
        return self.__cr_manifest["metadata"].get("namespace")

    @property
    def annotations(self) -> dict:
        """The metadata.annotations for this cluster, empty if unset"""
        return dict(self.__cr_manifest["metadata"].get("annotations") or {})

    @property
    def phase(self) -> Optional[str]:
        """The most recently reported status.phase"""
        return nested_get(self.__cr_manifest, "status.phase")

    ## Lookups #################################################################

    def get(self, path: str, default: Any = None) -> Any:
        """Look up a copy of the value at a dotted path inside the manifest,
        e.g. "spec.csi.enabled"
        """
        return copy.deepcopy(nested_get(self.__cr_manifest, path, default))

    def annotation(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.annotations.get(name, default)

    def feature_enabled(self, path: str, default: bool = False) -> bool:
        """Determine whether a boolean toggle under spec is on. Unparseable
        values fall back to the default.
        """
        value = parse_bool(self.get(f"spec.{path}"))
        if value is None:
            return default
        return value

    def to_dict(self) -> dict:
        return copy.deepcopy(self.__cr_manifest)

    def __str__(self) -> str:
        return f"ClusterSpec({self.namespace}/{self.name})"

    ## Implementation Details ##################################################

    @staticmethod
    def _as_config(section: dict) -> aconfig.Config:
        return aconfig.Config(copy.deepcopy(section), override_env_vars=False)

    @staticmethod
    def _validate_cr(cr_manifest: dict):
        """Ensure that all expected elements of the CR are present"""
        assert "kind" in cr_manifest, "CR missing required section ['kind']"
        assert "apiVersion" in cr_manifest, "CR missing required section ['apiVersion']"
        assert "metadata" in cr_manifest, "CR missing required section ['metadata']"
        assert (
            "name" in cr_manifest["metadata"]
        ), "CR missing required section ['metadata.name']"


## Predicates ##################################################################


def _annotation_is_true(spec: ClusterSpec, annotation_name: str) -> bool:
    return parse_bool(spec.annotation(annotation_name)) is True


def is_storage_enabled(spec: ClusterSpec) -> bool:
    """Storage is enabled unless the disable annotation is explicitly true"""
    return parse_bool(spec.annotation(constants.DISABLE_STORAGE_ANNOTATION_NAME)) is not True


def is_pks(spec: ClusterSpec) -> bool:
    return _annotation_is_true(spec, constants.IS_PKS_ANNOTATION_NAME)


def is_gke(spec: ClusterSpec) -> bool:
    return _annotation_is_true(spec, constants.IS_GKE_ANNOTATION_NAME)


def is_aks(spec: ClusterSpec) -> bool:
    return _annotation_is_true(spec, constants.IS_AKS_ANNOTATION_NAME)


def is_eks(spec: ClusterSpec) -> bool:
    return _annotation_is_true(spec, constants.IS_EKS_ANNOTATION_NAME)


def is_openshift(spec: ClusterSpec) -> bool:
    return _annotation_is_true(spec, constants.IS_OPENSHIFT_ANNOTATION_NAME)


def is_paused_for_migration(spec: ClusterSpec) -> bool:
    """Components hold still while the platform migration annotation is set"""
    return _annotation_is_true(spec, constants.PAUSE_COMPONENT_MIGRATION_ANNOTATION_NAME)


def is_pvc_controller_enabled(spec: ClusterSpec) -> bool:
    """Decide whether the pvc controller should run for this cluster.

    An explicit annotation always wins. Otherwise the controller never runs
    when storage is disabled, and runs by default on managed distributions
    and on OpenShift when not deployed into kube-system.
    """
    explicit = parse_bool(spec.annotation(constants.PVC_CONTROLLER_ANNOTATION_NAME))
    if explicit is not None:
        log.debug3("Explicit pvc controller setting for %s: %s", spec, explicit)
        return explicit

    if not is_storage_enabled(spec):
        return False

    return (
        is_pks(spec)
        or is_eks(spec)
        or is_gke(spec)
        or is_aks(spec)
        or (is_openshift(spec) and spec.namespace != constants.KUBE_SYSTEM_NAMESPACE)
    )
