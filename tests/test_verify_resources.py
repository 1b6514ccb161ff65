"""
Test the condition verification helpers
"""

# Standard
from datetime import datetime, timedelta, timezone

# Third Party
import pytest

# Local
from stor8.verify_resources import (
    ESTABLISHED_CONDITION_KEY,
    NAMES_ACCEPTED_CONDITION_KEY,
    check_condition,
    crd_names_rejected,
    get_latest_condition,
    verify_condition,
    verify_crd_established,
)

## Helpers #####################################################################


def make_state(*conditions):
    return {
        "kind": "CustomResourceDefinition",
        "metadata": {"name": "widgets.example.com"},
        "status": {"conditions": list(conditions)},
    }


def timestamp(offset_seconds=0):
    return (
        datetime(2023, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset_seconds)
    ).isoformat()


## get_latest_condition ########################################################


def test_get_latest_condition_none():
    """Make sure missing status or conditions yield None"""
    assert get_latest_condition({}, ESTABLISHED_CONDITION_KEY) is None
    assert get_latest_condition({"status": None}, ESTABLISHED_CONDITION_KEY) is None
    assert get_latest_condition(make_state(), ESTABLISHED_CONDITION_KEY) is None
    assert (
        get_latest_condition(
            make_state({"type": "Other", "status": "True"}), ESTABLISHED_CONDITION_KEY
        )
        is None
    )


def test_get_latest_condition_sorted_by_time():
    """Make sure the newest condition of the type wins regardless of order"""
    old = {"type": "Established", "status": "False", "lastTransitionTime": timestamp()}
    new = {
        "type": "Established",
        "status": "True",
        "lastTransitionTime": timestamp(60),
    }
    assert get_latest_condition(make_state(new, old), "Established") == new
    assert get_latest_condition(make_state(old, new), "Established") == new


def test_get_latest_condition_mixed_timezones():
    """Make sure naive and aware timestamps compare without raising"""
    naive_new = {
        "type": "Established",
        "status": "True",
        "lastTransitionTime": "2023-01-01T00:05:00",
    }
    aware_old = {
        "type": "Established",
        "status": "False",
        "lastTransitionTime": timestamp(),
    }
    assert get_latest_condition(make_state(aware_old, naive_new), "Established") == (
        naive_new
    )


def test_get_latest_condition_missing_timestamp():
    """Make sure conditions without a timestamp sort as oldest"""
    undated = {"type": "Established", "status": "False"}
    dated = {"type": "Established", "status": "True", "lastTransitionTime": timestamp()}
    assert get_latest_condition(make_state(undated, dated), "Established") == dated


## check_condition #############################################################


@pytest.mark.parametrize(
    ["condition", "expected_status", "expected_reason", "result"],
    [
        ({"status": "True"}, True, None, True),
        ({"status": "true"}, True, None, True),
        ({"status": "False"}, False, None, True),
        ({"status": "False"}, True, None, False),
        ({"status": True}, True, None, True),
        ({"status": ""}, True, None, False),
        ({}, False, None, False),
        ({"status": "True", "reason": "Yes"}, True, "Yes", True),
        ({"status": "True", "reason": "No"}, True, "Yes", False),
    ],
)
def test_check_condition(condition, expected_status, expected_reason, result):
    assert check_condition(condition, expected_status, expected_reason) == result


## CRD helpers #################################################################


def test_verify_crd_established():
    """Make sure only Established=True counts"""
    assert verify_crd_established(make_state({"type": "Established", "status": "True"}))
    assert not verify_crd_established(
        make_state({"type": "Established", "status": "False"})
    )
    assert not verify_crd_established(make_state())


def test_crd_names_rejected():
    """Make sure only NamesAccepted=False is a rejection"""
    assert crd_names_rejected(
        make_state({"type": NAMES_ACCEPTED_CONDITION_KEY, "status": "False"})
    )
    assert not crd_names_rejected(
        make_state({"type": NAMES_ACCEPTED_CONDITION_KEY, "status": "True"})
    )
    assert not crd_names_rejected(make_state())


def test_verify_condition_custom_timestamp_key():
    """Make sure a custom timestamp key can be used for ordering"""
    old = {"type": "Ready", "status": "False", "lastUpdateTime": timestamp()}
    new = {"type": "Ready", "status": "True", "lastUpdateTime": timestamp(5)}
    assert verify_condition(
        make_state(old, new), "Ready", True, timestamp_key="lastUpdateTime"
    )
