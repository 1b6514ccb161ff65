"""
The DryRunPlatformClient implements the PlatformClient interface but does not
actually interact with a cluster and instead holds the state of the cluster in a
local map.
"""

# Standard
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, List, Optional, Tuple, Union
import copy
import os
import random
import re
import uuid

# Third Party
import yaml

# First Party
import alog

# Local
from ..utils import merge_configs
from ..version import PlatformVersion
from .base import PlatformClientBase

log = alog.use_channel("DRY-RUN")

# Callback signature for dry run watches
WATCH_CALLBACK = Callable[[dict], None]  # pylint: disable=invalid-name

# Selector expressions, e.g. "app", "!app", "app=foo", "app!=foo",
# "tier in (a,b)", "tier notin (a,b)"
_SET_SELECTOR_EXPR = re.compile(r"^\s*([^\s!=]+)\s+(in|notin)\s+\((.*)\)\s*$")
_EQUALITY_SELECTOR_EXPR = re.compile(r"^\s*([^\s!=]+)\s*(==|=|!=)\s*(.*?)\s*$")
_EXISTS_SELECTOR_EXPR = re.compile(r"^\s*(!?)\s*([^\s!=]+)\s*$")


class DryRunPlatformClient(PlatformClientBase):
    """
    Platform client which doesn't actually talk to a platform!
    """

    def __init__(
        self,
        resources: Optional[List[dict]] = None,
        platform_version: Union[str, PlatformVersion] = "1.25.0",
        generate_resource_version: bool = True,
        resource_dir: Optional[str] = None,
    ):
        """Construct with an optional set of resources that already exist and
        the version to report for the control plane. Resources may also be
        loaded from the yaml files in resource_dir.
        """
        self._cluster_content = {}
        self._lock = RLock()
        self.platform_version = PlatformVersion.parse(platform_version)
        self.generate_resource_version = generate_resource_version

        # Registered watch callbacks keyed by watch key
        self._watches: Dict[str, List[WATCH_CALLBACK]] = {}
        self._delete_watches: Dict[str, List[WATCH_CALLBACK]] = {}

        for resource in list(resources or []) + self._parse_resource_dir(resource_dir):
            self._store(copy.deepcopy(resource))

    ## Interface ###############################################################

    def create(self, resource_definition: dict) -> Tuple[bool, bool]:
        api_version, kind, name, namespace = self._identifiers(resource_definition)
        log.debug("DRY RUN create [%s/%s/%s/%s]", namespace, kind, api_version, name)
        _, current = self.get_object_current_state(
            kind=kind, name=name, namespace=namespace, api_version=api_version
        )
        if current is not None:
            log.debug2("[%s/%s] already exists", kind, name)
            return True, False

        stored = self._store(copy.deepcopy(resource_definition))
        self._call_watches(self._watches, stored)
        return True, True

    def apply(self, resource_definition: dict) -> Tuple[bool, bool]:
        api_version, kind, name, namespace = self._identifiers(resource_definition)
        log.debug("DRY RUN apply [%s/%s/%s/%s]", namespace, kind, api_version, name)
        _, current = self.get_object_current_state(
            kind=kind, name=name, namespace=namespace, api_version=api_version
        )
        desired = copy.deepcopy(resource_definition)
        if current is None:
            stored = self._store(desired)
            self._call_watches(self._watches, stored)
            return True, True

        merged = merge_configs(copy.deepcopy(current), desired)
        changed = self._strip_generated(merged) != self._strip_generated(current)
        if changed:
            stored = self._store(merged)
            self._call_watches(self._watches, stored)
        return True, changed

    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        log.debug("DRY RUN delete [%s/%s/%s/%s]", namespace, kind, api_version, name)
        with self._lock:
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            matches = [
                api_ver
                for api_ver, entries in kind_entries.items()
                if name in entries and api_version in [None, api_ver]
            ]
            if not matches:
                log.debug2("[%s/%s] already absent", kind, name)
                return True, False
            removed = [
                self._delete_key(namespace, kind, api_ver, name) for api_ver in matches
            ]

        for resource in removed:
            self._call_watches(self._delete_watches, resource)
        return True, True

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        log.debug2(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        with self._lock:
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            matches = [
                entries[name]
                for api_ver, entries in kind_entries.items()
                if name in entries and api_version in [None, api_ver]
            ]
            log.debug3(
                "Found %d matches for [%s/%s] in %s", len(matches), kind, name, namespace
            )
            if len(matches) == 1:
                return True, copy.deepcopy(matches[0])
        return True, None

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        log.debug2(
            "DRY RUN filter_objects_current_state of [%s] in [%s]", kind, namespace
        )
        matches = []
        with self._lock:
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                if api_version not in [None, api_ver]:
                    continue
                for resource in entries.values():
                    labels = resource.get("metadata", {}).get("labels", {})
                    if label_selector and not match_selector(labels, label_selector):
                        continue
                    if field_selector and not match_selector(
                        _flatten(resource), field_selector
                    ):
                        continue
                    matches.append(copy.deepcopy(resource))
        return True, matches

    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        log.debug2("DRY RUN set_status of [%s/%s] in %s: %s", kind, name, namespace, status)
        _, content = self.get_object_current_state(kind, name, namespace, api_version)
        if content is None:
            log.debug("Did not find [%s/%s] in %s", kind, name, namespace)
            return False, False
        prev_status = content.get("status")
        content["status"] = copy.deepcopy(status)
        self._store(content)
        return True, prev_status != status

    def get_version(self) -> PlatformVersion:
        return self.platform_version

    ## Dry Run Methods #########################################################

    def register_watch(
        self,
        kind: str,
        callback: WATCH_CALLBACK,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
    ):
        """Register a callback invoked with the stored object whenever a
        matching object is created or changed
        """
        watch_key = self._watch_key(kind, namespace, name)
        log.debug("Registering watch for %s", watch_key)
        self._watches.setdefault(watch_key, []).append(callback)

    def register_delete_watch(
        self,
        kind: str,
        callback: WATCH_CALLBACK,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
    ):
        """Register a callback invoked with the removed object whenever a
        matching object is deleted
        """
        watch_key = self._watch_key(kind, namespace, name)
        log.debug("Registering delete watch for %s", watch_key)
        self._delete_watches.setdefault(watch_key, []).append(callback)

    ## Implementation Details ##################################################

    @staticmethod
    def _parse_resource_dir(resource_dir: Optional[str]) -> List[dict]:
        """If given, this will parse all yaml files found in the given directory"""
        all_resources = []
        if resource_dir is not None:
            for fname in sorted(os.listdir(resource_dir)):
                if fname.endswith(".yaml") or fname.endswith(".yml"):
                    resource_path = os.path.join(resource_dir, fname)
                    log.debug3("Reading resource file [%s]", resource_path)
                    with open(resource_path, encoding="utf-8") as handle:
                        all_resources.extend(
                            resource for resource in yaml.safe_load_all(handle) if resource
                        )
        return all_resources

    @staticmethod
    def _identifiers(resource_definition: dict) -> Tuple[str, str, str, Optional[str]]:
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        metadata = resource_definition.get("metadata", {})
        name = metadata.get("name")
        assert None not in [kind, name], "Cannot store resource without kind or name"
        return api_version, kind, name, metadata.get("namespace")

    @staticmethod
    def _watch_key(kind: str, namespace: Optional[str], name: Optional[str]) -> str:
        return ":".join([kind or "", namespace or "", name or ""])

    @staticmethod
    def _strip_generated(resource: dict) -> dict:
        resource = copy.deepcopy(resource)
        metadata = resource.get("metadata", {})
        for key in ["resourceVersion", "uid", "creationTimestamp"]:
            metadata.pop(key, None)
        return resource

    def _call_watches(self, watch_map: Dict[str, List[WATCH_CALLBACK]], resource: dict):
        _, kind, name, namespace = self._identifiers(resource)
        for key in [
            self._watch_key(kind, namespace, name),
            self._watch_key(kind, namespace, None),
            self._watch_key(kind, None, None),
        ]:
            for callback in list(watch_map.get(key, [])):
                log.debug2("Calling registered watch [%s] for [%s]", callback, key)
                callback(copy.deepcopy(resource))

    def _store(self, resource: dict) -> dict:
        api_version, kind, name, namespace = self._identifiers(resource)
        with self._lock:
            entries = (
                self._cluster_content.setdefault(namespace, {})
                .setdefault(kind, {})
                .setdefault(api_version, {})
            )
            current_meta = entries.get(name, {}).get("metadata", {})
            metadata = resource.setdefault("metadata", {})
            metadata["creationTimestamp"] = current_meta.get(
                "creationTimestamp", datetime.now().isoformat()
            )
            metadata["uid"] = current_meta.get("uid", str(uuid.uuid4()))
            if self.generate_resource_version:
                metadata["resourceVersion"] = str(random.randint(1, 100000)).zfill(6)
            entries[name] = resource
            return copy.deepcopy(resource)

    def _delete_key(self, namespace, kind, api_version, name) -> dict:
        removed = self._cluster_content[namespace][kind][api_version].pop(name)
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]
        return removed


## Selectors ###################################################################


def match_selector(values: dict, selector: str) -> bool:
    """Determine whether a flat dict of values matches a kubernetes-style
    label or field selector. See
    https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/
    """
    for requirement in _split_selectors(selector):
        if not requirement.strip():
            continue
        if not _match_requirement(values, requirement):
            log.debug3("Values %s do not match [%s]", values, requirement)
            return False
    return True


def _match_requirement(values: dict, requirement: str) -> bool:
    match = _SET_SELECTOR_EXPR.match(requirement)
    if match:
        key, operator, options = match.groups()
        options = {option.strip() for option in options.split(",")}
        value = values.get(key)
        value = str(value) if value is not None else None
        if operator == "in":
            return value in options
        return value not in options

    match = _EQUALITY_SELECTOR_EXPR.match(requirement)
    if match:
        key, operator, expected = match.groups()
        value = values.get(key)
        value = str(value) if value is not None else None
        if operator == "!=":
            return value != expected
        return value == expected

    match = _EXISTS_SELECTOR_EXPR.match(requirement)
    if match:
        negate, key = match.groups()
        return (key in values) != bool(negate)

    raise ValueError(f"Invalid selector requirement: {requirement}")


def _split_selectors(selector: str) -> List[str]:
    """Split a selector on commas that are not inside parentheses"""
    parts = []
    depth = 0
    current = ""
    for char in selector:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        current += char
    if current:
        parts.append(current)
    return parts


def _flatten(dictionary: dict, prefix: str = "") -> dict:
    """Convert a nested dict into a flat dict of dotted keys"""
    if not isinstance(dictionary, dict):
        return {prefix: dictionary}
    output = {}
    for key, value in dictionary.items():
        output.update(_flatten(value, key if not prefix else f"{prefix}.{key}"))
    return output
