"""
This module holds the common functionality used to project the result of a
reconcile cycle into the status of the StorageCluster. The core never writes
the status itself; callers decide whether and where to persist it.

The projected status has the schema:
{
    "phase": "Converged" | "Converging" | "Blocked",
    "conditions": [
        {
            "type": "Ready",
            "status": "True" | "False",
            "reason": <ReadyReason>,
            "message": <str>,
            "lastTransitionTime": <timestamp>,
        }
    ],
    "componentStatus": {
        "reconciledComponents": [...],
        "deletedComponents": [...],
        "pausedComponents": [...],
        "unstartedComponents": [...],
        "failedComponents": [...],
    }
}
"""

# Standard
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .driver import ClusterPhase, CycleResult

log = alog.use_channel("STTUS")

## Public ######################################################################

READY_CONDITION = "Ready"

# The key in the condition used for the timestamp
TIMESTAMP_KEY = "lastTransitionTime"

# The keys for component status information
COMPONENT_STATUS = "componentStatus"
COMPONENT_STATUS_RECONCILED = "reconciledComponents"
COMPONENT_STATUS_DELETED = "deletedComponents"
COMPONENT_STATUS_PAUSED = "pausedComponents"
COMPONENT_STATUS_UNSTARTED = "unstartedComponents"
COMPONENT_STATUS_FAILED = "failedComponents"


class ReadyReason(Enum):
    """Reasons for the Ready condition"""

    # All components converged
    CONVERGED = "Converged"
    # Cycle completed but some components reported advisory errors
    CONVERGING = "Converging"
    # A critical component error aborted the cycle
    BLOCKED = "Blocked"


_PHASE_TO_REASON = {
    ClusterPhase.CONVERGED: ReadyReason.CONVERGED,
    ClusterPhase.CONVERGING: ReadyReason.CONVERGING,
    ClusterPhase.BLOCKED: ReadyReason.BLOCKED,
}


def make_cluster_status(
    result: CycleResult,
    current_status: Optional[dict] = None,
) -> dict:
    """Create a full status object from the result of a cycle

    Args:
        result:  CycleResult
            The outcome of the cycle
        current_status:  Optional[dict]
            The status currently on the cluster. Used to keep the transition
            timestamp stable when the Ready condition does not change.

    Returns:
        status:  dict
            The projected status
    """
    phase = result.phase
    ready_status = str(phase == ClusterPhase.CONVERGED)
    message = _ready_message(result)

    transition_time = datetime.now(timezone.utc).isoformat()
    previous_ready = get_condition(READY_CONDITION, current_status or {})
    if previous_ready.get("status") == ready_status and previous_ready.get(
        TIMESTAMP_KEY
    ):
        transition_time = previous_ready[TIMESTAMP_KEY]

    status = {
        "phase": phase.value,
        "conditions": [
            {
                "type": READY_CONDITION,
                "status": ready_status,
                "reason": _PHASE_TO_REASON[phase].value,
                "message": message,
                TIMESTAMP_KEY: transition_time,
            }
        ],
        COMPONENT_STATUS: {
            COMPONENT_STATUS_RECONCILED: list(result.reconciled),
            COMPONENT_STATUS_DELETED: list(result.deleted),
            COMPONENT_STATUS_PAUSED: list(result.paused),
            COMPONENT_STATUS_UNSTARTED: list(result.unstarted),
            COMPONENT_STATUS_FAILED: [
                failure.component for failure in result.failures
            ],
        },
    }
    log.debug3("Projected status: %s", status)
    return status


def status_changed(current_status: dict, new_status: dict) -> bool:
    """Compare two status objects to determine if there is a meaningful change
    between the current status and the proposed new status. A meaningful change
    is defined as any change besides a timestamp.

    Args:
        current_status:  dict
            The raw status dict from the current CR
        new_status:  dict
            The proposed new status

    Returns:
        status_changed:  bool
            True if there is a meaningful change between the current status and
            the new status
    """
    # Status objects must be dicts
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True

    # Perform a deep diff, excluding timestamps
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


def get_condition(type_name: str, current_status: dict) -> dict:
    """Extract the given condition type from a status object

    Args:
        type_name:  str
            The condition type to fetch
        current_status:  dict
            The dict representation of the status

    Returns:
        condition:  dict
            The condition object if found, empty dict otherwise
    """
    cond = [
        cond
        for cond in (current_status or {}).get("conditions") or []
        if cond.get("type") == type_name
    ]
    if cond:
        assert len(cond) == 1, f"Found multiple condition entries for {type_name}"
        return cond[0]
    return {}


## Implementation Details ######################################################


def _ready_message(result: CycleResult) -> str:
    if result.critical_failure is not None:
        return f"Blocked on critical issue in {result.critical_failure}"
    if result.advisory_failures:
        return "Converging with advisory issues: " + "; ".join(
            str(failure) for failure in result.advisory_failures
        )
    return "All components converged"
