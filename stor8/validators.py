"""
Validators that observe the platform after the driver has run and block until
the storage cluster reaches an expected state. Each validator is a probe
factory plus a thin wrapper that runs the probe through the convergence
waiter.
"""

# Standard
from typing import List, Optional
import threading

# First Party
import alog

# Local
from . import config, constants
from .exceptions import ClusterError
from .platform import PlatformClientBase
from .verify_resources import (
    NAMES_ACCEPTED_CONDITION_KEY,
    crd_names_rejected,
    get_latest_condition,
    verify_crd_established,
)
from .waiter import CONVERGENCE_PROBE, ProbeResult, wait_for_convergence

log = alog.use_channel("VALID")

CLUSTER_ONLINE_PHASE = "Online"
NODE_FAILED_PHASE = "Failed"


## Probes ######################################################################


def cluster_in_state_probe(
    platform_client: PlatformClientBase,
    name: str,
    namespace: str,
    phase: str,
) -> CONVERGENCE_PROBE:
    """Probe that completes with the StorageCluster once it reports the given
    phase
    """

    def probe() -> ProbeResult:
        success, cluster = platform_client.get_object_current_state(
            kind=constants.STORAGE_CLUSTER_KIND,
            name=name,
            namespace=namespace,
            api_version=constants.STORAGE_API_VERSION,
        )
        if not success or cluster is None:
            return ProbeResult.retry(
                f"failed to get {constants.STORAGE_CLUSTER_KIND} {name} in {namespace}"
            )
        current_phase = (cluster.get("status") or {}).get("phase") or ""
        if current_phase != phase:
            if not current_phase:
                return ProbeResult.retry("failed to get cluster status")
            return ProbeResult.retry(f"cluster state: {current_phase}")
        return ProbeResult.done(cluster)

    return probe


def all_storage_nodes_in_state_probe(
    platform_client: PlatformClientBase,
    namespace: str,
    phase: str,
) -> CONVERGENCE_PROBE:
    """Probe that completes once every StorageNode in the namespace reports
    the given phase
    """

    def probe() -> ProbeResult:
        success, nodes = platform_client.filter_objects_current_state(
            kind=constants.STORAGE_NODE_KIND,
            namespace=namespace,
            api_version=constants.STORAGE_API_VERSION,
        )
        if not success:
            return ProbeResult.retry(
                f"failed to list {constants.STORAGE_NODE_KIND}s in {namespace}"
            )
        for node in nodes:
            node_phase = (node.get("status") or {}).get("phase")
            if node_phase != phase:
                return ProbeResult.retry(
                    f"{constants.STORAGE_NODE_KIND} {node['metadata']['name']} "
                    + f"in {namespace} is in state {node_phase}"
                )
        return ProbeResult.done(nodes)

    return probe


def cluster_uninstalled_probe(
    platform_client: PlatformClientBase,
    name: str,
    namespace: str,
) -> CONVERGENCE_PROBE:
    """Probe that completes once the StorageCluster is gone"""

    def probe() -> ProbeResult:
        success, cluster = platform_client.get_object_current_state(
            kind=constants.STORAGE_CLUSTER_KIND,
            name=name,
            namespace=namespace,
            api_version=constants.STORAGE_API_VERSION,
        )
        if not success:
            return ProbeResult.retry(
                f"failed to get {constants.STORAGE_CLUSTER_KIND} {namespace}/{name}"
            )
        if cluster is None:
            return ProbeResult.done()

        owned_pods = _get_owned_pods(platform_client, cluster)
        if owned_pods is None:
            return ProbeResult.retry(
                f"failed to get pods for {constants.STORAGE_CLUSTER_KIND} "
                + f"{namespace}/{name}"
            )
        if owned_pods:
            return ProbeResult.retry(
                f"{len(owned_pods)} pods are still present, waiting for pods to "
                + f"be deleted: {owned_pods}"
            )
        return ProbeResult.retry(
            f"pods are deleted, but {constants.STORAGE_CLUSTER_KIND} "
            + f"{namespace}/{name} still present"
        )

    return probe


def crd_established_probe(
    platform_client: PlatformClientBase,
    crd_name: str,
    api_version: str = constants.CRD_API_VERSION_V1,
) -> CONVERGENCE_PROBE:
    """Probe that completes once the named CRD is established and fails if its
    names were rejected
    """

    def probe() -> ProbeResult:
        success, crd = platform_client.get_object_current_state(
            kind=constants.CRD_KIND, name=crd_name, api_version=api_version
        )
        if not success or crd is None:
            return ProbeResult.retry(f"failed to get {crd_name}")
        if verify_crd_established(crd):
            return ProbeResult.done(crd)
        if crd_names_rejected(crd):
            condition = get_latest_condition(crd, NAMES_ACCEPTED_CONDITION_KEY)
            detail = f"{condition.get('reason', '')} {condition.get('message', '')}"
            return ProbeResult.fatal(
                ClusterError(f"name conflict for {crd_name}: {detail.strip()}")
            )
        return ProbeResult.retry("not all conditions validated ready")

    return probe


## Validators ##################################################################


def validate_cluster_in_state(  # pylint: disable=too-many-arguments
    platform_client: PlatformClientBase,
    name: str,
    namespace: str,
    phase: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> dict:
    """Wait for the StorageCluster to report the given phase and return it"""
    return _wait(
        cluster_in_state_probe(platform_client, name, namespace, phase),
        timeout,
        poll_interval,
        cancel,
        f"validate {namespace}/{name} is {phase}",
    )


def validate_cluster_is_online(
    platform_client: PlatformClientBase,
    name: str,
    namespace: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> dict:
    return validate_cluster_in_state(
        platform_client,
        name,
        namespace,
        CLUSTER_ONLINE_PHASE,
        timeout=timeout,
        poll_interval=poll_interval,
        cancel=cancel,
    )


def validate_all_storage_nodes_in_state(  # pylint: disable=too-many-arguments
    platform_client: PlatformClientBase,
    namespace: str,
    phase: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> List[dict]:
    return _wait(
        all_storage_nodes_in_state_probe(platform_client, namespace, phase),
        timeout,
        poll_interval,
        cancel,
        f"validate storage nodes in {namespace} are {phase}",
    )


def validate_cluster_is_failed(
    platform_client: PlatformClientBase,
    namespace: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> List[dict]:
    """A cluster is failed once every one of its storage nodes is failed"""
    return validate_all_storage_nodes_in_state(
        platform_client,
        namespace,
        NODE_FAILED_PHASE,
        timeout=timeout,
        poll_interval=poll_interval,
        cancel=cancel,
    )


def validate_uninstall_cluster(
    platform_client: PlatformClientBase,
    name: str,
    namespace: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
):
    _wait(
        cluster_uninstalled_probe(platform_client, name, namespace),
        timeout,
        poll_interval,
        cancel,
        f"validate {namespace}/{name} is uninstalled",
    )


def validate_crd_established(
    platform_client: PlatformClientBase,
    crd_name: str,
    api_version: str = constants.CRD_API_VERSION_V1,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> dict:
    return _wait(
        crd_established_probe(platform_client, crd_name, api_version),
        timeout,
        poll_interval,
        cancel,
        f"validate {crd_name}",
    )


## Implementation Details ######################################################


def _wait(
    probe: CONVERGENCE_PROBE,
    timeout: Optional[float],
    poll_interval: Optional[float],
    cancel: Optional[threading.Event],
    description: str,
):
    """Run a probe with the library default bounds filled in"""
    if timeout is None:
        timeout = config.convergence.default_timeout_seconds
    if timeout <= 0:
        raise ValueError(f"timeout must be positive to {description}. Got {timeout}")
    if poll_interval is None:
        poll_interval = min(config.convergence.default_interval_seconds, timeout)
    log.debug2("Waiting up to %ss to %s", timeout, description)
    return wait_for_convergence(
        probe,
        timeout=timeout,
        poll_interval=poll_interval,
        cancel=cancel,
        description=description,
    )


def _get_owned_pods(
    platform_client: PlatformClientBase, owner: dict
) -> Optional[List[str]]:
    """Names of the pods in the owner's namespace that it owns, or None if the
    pods could not be listed
    """
    metadata = owner.get("metadata", {})
    owner_uid = metadata.get("uid")
    success, pods = platform_client.filter_objects_current_state(
        kind="Pod", namespace=metadata.get("namespace"), api_version="v1"
    )
    if not success:
        return None
    return [
        pod["metadata"]["name"]
        for pod in pods
        if any(
            ref.get("uid") == owner_uid
            for ref in pod.get("metadata", {}).get("ownerReferences") or []
        )
    ]
