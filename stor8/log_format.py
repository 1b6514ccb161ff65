"""
Custom logging formats that contain more detailed stor8 logs
"""

# First Party
from alog import AlogJsonFormatter
import alog

log = alog.use_channel("LGFMT")


class Stor8JsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add stor8 specific
    fields to the json. This includes the identity of the StorageCluster being
    reconciled, the cycle id, and thread information.
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "process",
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "clusterName",
        "clusterNamespace",
        "cycleId",
        "component",
    ]

    def __init__(self, manifest=None, cycle_id=None):
        super().__init__()
        self.manifest = manifest
        self.cycle_id = cycle_id

    def format(self, record):
        if self.cycle_id:
            record.cycleId = self.cycle_id

        if resource := getattr(record, "resource", self.manifest):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")

            metadata = resource.get("metadata", {})
            record.clusterName = metadata.get("name")
            record.clusterNamespace = metadata.get("namespace")

        return super().format(record)
