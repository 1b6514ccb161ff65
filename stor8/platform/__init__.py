"""
The PlatformClient is the abstraction in charge of interacting with the
orchestration platform to create, look up, and delete resources.
"""

# Local
from .base import PlatformClientBase
from .dry_run_platform_client import DryRunPlatformClient
from .kube_platform_client import KubePlatformClient
