"""
Shared module to hold constant values for the library
"""

# Default priority for components without special ordering needs
DEFAULT_COMPONENT_PRIORITY = 0

# Log config annotations
LOG_DEFAULT_LEVEL_NAME = "stor8.io/log-default-level"
LOG_FILTERS_NAME = "stor8.io/log-filters"
LOG_THREAD_ID_NAME = "stor8.io/log-thread-id"
LOG_JSON_NAME = "stor8.io/log-json"

# Annotation used to disable the storage platform for a cluster
DISABLE_STORAGE_ANNOTATION_NAME = "operator.libopenstorage.org/disable-storage"

# Annotation used to force the pvc controller on or off
PVC_CONTROLLER_ANNOTATION_NAME = "portworx.io/pvc-controller"

# Annotation used to hold components still while the platform is migrating
PAUSE_COMPONENT_MIGRATION_ANNOTATION_NAME = "portworx.io/pause-component-migration"

# Distribution annotations
IS_PKS_ANNOTATION_NAME = "portworx.io/is-pks"
IS_GKE_ANNOTATION_NAME = "portworx.io/is-gke"
IS_AKS_ANNOTATION_NAME = "portworx.io/is-aks"
IS_EKS_ANNOTATION_NAME = "portworx.io/is-eks"
IS_OPENSHIFT_ANNOTATION_NAME = "portworx.io/is-openshift"

# Namespace that the openshift pvc controller rule special cases
KUBE_SYSTEM_NAMESPACE = "kube-system"

# Event reasons
FAILED_COMPONENT_REASON = "FailedComponent"
DELETED_COMPONENT_REASON = "DeletedComponent"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Api group and versions for custom resource definitions
CRD_KIND = "CustomResourceDefinition"
CRD_API_VERSION_V1 = "apiextensions.k8s.io/v1"
CRD_API_VERSION_V1BETA1 = "apiextensions.k8s.io/v1beta1"

# StorageCluster / StorageNode identity
STORAGE_CLUSTER_KIND = "StorageCluster"
STORAGE_NODE_KIND = "StorageNode"
STORAGE_API_VERSION = "core.libopenstorage.org/v1"
