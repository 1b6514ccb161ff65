"""
This library holds common verification routines for the status conditions
reported on individual kubernetes resources.
"""

# Standard
from datetime import datetime, timezone
from typing import List, Optional

# Third Party
import dateutil.parser

# First Party
import alog

## Globals #####################################################################

log = alog.use_channel("VERFY")

DEFAULT_TIMESTAMP_KEY = "lastTransitionTime"
ESTABLISHED_CONDITION_KEY = "Established"
NAMES_ACCEPTED_CONDITION_KEY = "NamesAccepted"

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


## Main Functions ##############################################################


def get_latest_condition(
    object_state: dict,
    type_val: str,
    timestamp_key: str = DEFAULT_TIMESTAMP_KEY,
) -> Optional[dict]:
    """Get the most recent condition of the given type

    Args:
        object_state:  dict
            The current state of the resource
        type_val:  str
            The condition type to look for
        timestamp_key:  str
            The condition field used to order conditions of the same type

    Returns:
        condition:  Optional[dict]
            The newest condition with the given type or None if there are none
    """
    conditions = _get_conditions(object_state, type_val)
    log.debug2("Found %d [%s] conditions", len(conditions), type_val)
    if not conditions:
        return None
    return _sort_conditions_by_date(conditions, timestamp_key)[0]


def verify_condition(
    object_state: dict,
    type_val: str,
    expected_status: bool,
    timestamp_key: str = DEFAULT_TIMESTAMP_KEY,
    expected_reason: Optional[str] = None,
) -> bool:
    """Check whether the latest condition of the given type has the expected
    status and (optionally) reason. A resource with no such condition is not
    verified.
    """
    latest_cond = get_latest_condition(object_state, type_val, timestamp_key)
    if latest_cond is None:
        log.debug2("No %s conditions. Not verified", type_val)
        return False
    log.debug3("Latest '%s' condition: %s", type_val, latest_cond)
    return check_condition(latest_cond, expected_status, expected_reason)


def verify_crd_established(object_state: dict) -> bool:
    """A CustomResourceDefinition is usable once Established is True"""
    return verify_condition(object_state, ESTABLISHED_CONDITION_KEY, True)


def crd_names_rejected(object_state: dict) -> bool:
    """A CustomResourceDefinition whose names conflict with another reports
    NamesAccepted False and will never become established
    """
    return verify_condition(object_state, NAMES_ACCEPTED_CONDITION_KEY, False)


def check_condition(
    condition: dict, expected_status: bool, expected_reason: Optional[str] = None
) -> bool:
    """Helper to parse a condition object and check if it has expected values."""

    def is_expected_status() -> bool:
        """Helper to parse the various ways a 'status' may be represented in a
        condition
        """
        obj_status = condition.get("status")
        if obj_status is None or obj_status == "":
            return False
        if isinstance(obj_status, str):
            return obj_status.lower() == str(expected_status).lower()
        return bool(obj_status) == expected_status

    def is_expected_reason() -> bool:
        if expected_reason is None:
            return True
        return condition.get("reason") == expected_reason

    return is_expected_status() and is_expected_reason()


## Implementation Details ######################################################


def _get_conditions(object_state: dict, type_val: str) -> List[dict]:
    """Get the list of conditions from an object state"""
    return [
        cond
        for cond in (object_state.get("status") or {}).get("conditions") or []
        if cond.get("type") == type_val
    ]


def _parse_condition_timestamp(condition: dict, timestamp_key: str) -> datetime:
    """Parse the timestamp in a condition, normalized to UTC"""
    timestamp = condition.get(timestamp_key)
    log.debug3("Timestamp [%s]: %s", timestamp_key, timestamp)
    if isinstance(timestamp, str):
        timestamp = dateutil.parser.parse(timestamp)
    if not isinstance(timestamp, datetime):
        log.debug("Found condition with no valid timestamp. Using epoch")
        return _EPOCH
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _sort_conditions_by_date(conditions: List[dict], timestamp_key: str) -> List[dict]:
    """Helper to parse datestamps and sort a list of conditions. The sort will
    put newest conditions first.
    """
    return sorted(
        conditions,
        key=lambda x: _parse_condition_timestamp(x, timestamp_key),
        reverse=True,
    )
