"""
Component that installs the VolumePlacementStrategy custom resource
definition used by the storage platform to describe volume placement rules
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from .. import constants
from ..cluster import ClusterSpec, is_storage_enabled
from ..component import Component
from ..decorator import component
from ..events import EventType
from ..exceptions import critical
from ..versioned_resource import (
    CRDDescriptor,
    CRDVersion,
    ResourceScope,
    SchemaVariant,
    VersionedResourceAdapter,
)
from ..version import MINIMUM_VERSION, PlatformVersion

log = alog.use_channel("VPSCRD")

COMPONENT_NAME = "Portworx CRDs"

# Flag set once the CRD has been created and established
VPS_CRD_CREATED_FLAG = "volume-placement-strategy-crd-created"

# Control planes from this version on serve apiextensions.k8s.io/v1
CRD_V1_MIN_VERSION = PlatformVersion(1, 16)

VPS_GROUP = "portworx.io"
VPS_KIND = "VolumePlacementStrategy"
VPS_PLURAL = "volumeplacementstrategies"
VPS_SINGULAR = "volumeplacementstrategy"
VPS_SHORT_NAMES = ("vps", "vp")
VPS_VERSIONS = (
    CRDVersion(name="v1beta2", served=True, storage=True),
    CRDVersion(name="v1beta1", served=False, storage=False),
)


def _vps_descriptor(api_version: str, preserve_unknown_fields: bool) -> CRDDescriptor:
    return CRDDescriptor(
        group=VPS_GROUP,
        kind=VPS_KIND,
        plural=VPS_PLURAL,
        singular=VPS_SINGULAR,
        versions=VPS_VERSIONS,
        scope=ResourceScope.CLUSTER,
        short_names=VPS_SHORT_NAMES,
        api_version=api_version,
        preserve_unknown_fields=preserve_unknown_fields,
    )


VPS_CRD_VARIANTS = (
    SchemaVariant(
        min_version=MINIMUM_VERSION,
        descriptor=_vps_descriptor(constants.CRD_API_VERSION_V1BETA1, False),
    ),
    SchemaVariant(
        min_version=CRD_V1_MIN_VERSION,
        descriptor=_vps_descriptor(constants.CRD_API_VERSION_V1, True),
    ),
)


@component(name=COMPONENT_NAME, priority=constants.DEFAULT_COMPONENT_PRIORITY)
class StorageCRDComponent(Component):
    """Installs the VolumePlacementStrategy CRD once and trusts the flag on
    later cycles unless configured to revalidate
    """

    def __init__(
        self,
        adapter: Optional[VersionedResourceAdapter] = None,
        cancel: Optional[threading.Event] = None,
    ):
        super().__init__()
        self.adapter = adapter or VersionedResourceAdapter(VPS_CRD_VARIANTS)
        self.cancel = cancel

    def is_enabled(self, spec: ClusterSpec) -> bool:
        return is_storage_enabled(spec)

    def reconcile(self, spec: ClusterSpec):
        if self.has_flag(VPS_CRD_CREATED_FLAG) and not self._crd_missing():
            log.debug3("%s already established", self.adapter.resource_name)
            return

        try:
            self.adapter.ensure(self.platform_client, self.platform_version, self.cancel)
        except Exception as err:
            raise critical(
                err, f"Failed to create {self.adapter.resource_name}: {err}"
            ) from err

        self.set_flag(VPS_CRD_CREATED_FLAG)
        self.record_event(
            EventType.NORMAL,
            "CRDEstablished",
            f"{self.adapter.resource_name} is established",
        )

    def delete(self, spec: ClusterSpec):
        # The CRD is left in place since removing it would delete every
        # VolumePlacementStrategy in the cluster
        self.mark_deleted()

    ## Implementation Details ##################################################

    def _crd_missing(self) -> bool:
        """When revalidating, detect a CRD that was removed out of band"""
        if not self.should_revalidate():
            return False
        descriptor = self.adapter.select(self.platform_version)
        success, current = self.platform_client.get_object_current_state(
            kind=constants.CRD_KIND,
            name=descriptor.name,
            api_version=descriptor.api_version,
        )
        if success and current is not None:
            return False
        log.info("%s missing on revalidation. Recreating", descriptor.name)
        self.clear_flag(VPS_CRD_CREATED_FLAG)
        return True
