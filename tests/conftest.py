"""
Shared test config
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from stor8.registry import reset_default_registry
from stor8.test_helpers.helpers import configure_logging

configure_logging()


@pytest.fixture(autouse=True)
def no_local_kubeconfig():
    """This fixture makes sure the tests run as if KUBECONFIG is not exported in
    the environment, even if it is
    """
    with mock.patch(
        "kubernetes.config.new_client_from_config", side_effect=RuntimeError
    ):
        yield


@pytest.fixture(autouse=True)
def clean_default_registry():
    """Make sure no test leaks components into the process-wide registry"""
    reset_default_registry()
    yield
    reset_default_registry()
