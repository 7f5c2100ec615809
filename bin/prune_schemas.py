"""
Mark-and-sweep pruning of components that the surviving operations never use.

Assumes every schema $ref is already canonical (see normalize_refs.py): the
reachability scan only understands `#/components/schemas/<Name>` refs and does
not resolve pointers into schema bodies.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from openapi_pointers import (
    PARAMETER_REF_PREFIX,
    REQUEST_BODY_REF_PREFIX,
    RESPONSE_REF_PREFIX,
    SCHEMA_REF_PREFIX,
    Json,
    component_group,
    component_name,
    eprint,
    iter_content_schemas,
    iter_operations,
)
from simplify_policy import SimplifyPolicy


@dataclass
class PruneStats:
    schemas_before: int = 0
    schemas_after: int = 0
    broken_refs_removed: int = 0
    responses_removed: int = 0
    request_bodies_removed: int = 0


def collect_schema_refs(node: Json, on_ref: Callable[[str], None], visited: Optional[set[int]] = None) -> None:
    """Call on_ref(name) for every canonical schema $ref found anywhere under node."""
    if visited is None:
        visited = set()
    if not isinstance(node, (dict, list)) or id(node) in visited:
        return
    visited.add(id(node))

    if isinstance(node, list):
        for item in node:
            collect_schema_refs(item, on_ref, visited)
        return

    for key, value in node.items():
        if key == "$ref":
            name = component_name(value, SCHEMA_REF_PREFIX)
            if name is not None:
                on_ref(name)
        else:
            collect_schema_refs(value, on_ref, visited)


class _SeedCollector:
    """Phase 1: walk surviving paths and gather the schema names they use."""

    def __init__(self, doc: Json) -> None:
        self.components = {
            "parameters": component_group(doc, "parameters"),
            "responses": component_group(doc, "responses"),
            "requestBodies": component_group(doc, "requestBodies"),
        }
        self._prefixes = {
            "parameters": PARAMETER_REF_PREFIX,
            "responses": RESPONSE_REF_PREFIX,
            "requestBodies": REQUEST_BODY_REF_PREFIX,
        }
        self._followed: dict[str, set[str]] = {kind: set() for kind in self.components}
        self.queue: deque[str] = deque()

    def _enqueue(self, name: str) -> None:
        self.queue.append(name)

    def _follow(self, node: Any, kind: str) -> Optional[dict[str, Any]]:
        """Return the node to scan, following one component ref of `kind` (at most once per name)."""
        if not isinstance(node, dict):
            return None
        if "$ref" not in node:
            return node
        name = component_name(node.get("$ref"), self._prefixes[kind])
        if name is None or name in self._followed[kind]:
            return None
        target = self.components[kind].get(name)
        if not isinstance(target, dict):
            return None
        self._followed[kind].add(name)
        # Component entries may themselves be refs to other entries of the same kind.
        return self._follow(target, kind)

    def add_parameter(self, parameter: Any) -> None:
        parameter = self._follow(parameter, "parameters")
        if parameter is None:
            return
        if isinstance(parameter.get("schema"), dict):
            collect_schema_refs(parameter["schema"], self._enqueue)
        for _mt, schema in iter_content_schemas(parameter):
            collect_schema_refs(schema, self._enqueue)

    def add_content_holder(self, node: Any, kind: str) -> None:
        node = self._follow(node, kind)
        if node is None:
            return
        for _mt, schema in iter_content_schemas(node):
            collect_schema_refs(schema, self._enqueue)

    def add_paths(self, paths: Any) -> None:
        if not isinstance(paths, dict):
            return
        for path_item in paths.values():
            if not isinstance(path_item, dict):
                continue
            for parameter in path_item.get("parameters") or []:
                self.add_parameter(parameter)
            for _method, operation in iter_operations(path_item):
                for parameter in operation.get("parameters") or []:
                    self.add_parameter(parameter)
                if operation.get("requestBody") is not None:
                    self.add_content_holder(operation["requestBody"], "requestBodies")
                responses = operation.get("responses")
                if isinstance(responses, dict):
                    for response in responses.values():
                        self.add_content_holder(response, "responses")


def find_used_schemas(doc: Json, *, policy: SimplifyPolicy = SimplifyPolicy()) -> set[str]:
    """Phases 1 and 2: seed from the surviving operations, then take the closure."""
    schemas = component_group(doc, "schemas")
    seeds = _SeedCollector(doc)
    seeds.add_paths(doc.get("paths") if isinstance(doc, dict) else None)
    if policy.error_response in seeds.components["responses"]:
        seeds.add_content_holder(seeds.components["responses"][policy.error_response], "responses")
    for error_schema in policy.error_schemas:
        if error_schema in schemas:
            seeds.queue.append(error_schema)

    used: set[str] = set()
    visited: set[str] = set()
    queue = seeds.queue
    while queue:
        name = queue.popleft()
        if name in visited:
            continue
        visited.add(name)

        if name not in schemas:
            eprint(f"warning: Schema {name} not found")
            continue
        used.add(name)

        inner_refs: list[str] = []
        collect_schema_refs(schemas[name], inner_refs.append)
        for ref_name in inner_refs:
            if ref_name not in schemas:
                eprint(f"warning: Schema {name} references missing schema: {ref_name}")
            elif ref_name not in visited:
                queue.append(ref_name)

    return used


def _broken_schema_target(ref: Any, available: dict[str, Any]) -> Optional[str]:
    """
    Return the addressed remainder of a `#/components/schemas/...` ref when it
    is not an existing schema name. Sub-path refs left behind by the
    normalizer are never valid here.
    """
    if not isinstance(ref, str) or not ref.startswith(SCHEMA_REF_PREFIX):
        return None
    name = component_name(ref, SCHEMA_REF_PREFIX)
    if name is not None and name in available:
        return None
    return name if name is not None else ref[len(SCHEMA_REF_PREFIX):]


def clean_broken_refs(node: Json, available: dict[str, Any], visited: Optional[set[int]] = None) -> int:
    """
    Repair schema $refs whose target no longer exists, in place:
    list elements holding such a ref are removed; in objects the $ref key is
    dropped and an emptied object becomes `{type: object}`.
    Returns the number of repaired refs.
    """
    if visited is None:
        visited = set()
    if not isinstance(node, (dict, list)) or id(node) in visited:
        return 0
    visited.add(id(node))

    removed = 0
    if isinstance(node, list):
        for idx in range(len(node) - 1, -1, -1):
            item = node[idx]
            if isinstance(item, dict) and "$ref" in item:
                name = _broken_schema_target(item["$ref"], available)
                if name is not None:
                    eprint(f"warning: Removing broken reference: {name}")
                    del node[idx]
                    removed += 1
                    continue
            removed += clean_broken_refs(item, available, visited)
        return removed

    for key in list(node.keys()):
        value = node[key]
        if key == "$ref":
            name = _broken_schema_target(value, available)
            if name is not None:
                eprint(f"warning: Removing broken $ref: {name}")
                del node[key]
                if not node:
                    node["type"] = "object"
                removed += 1
        else:
            removed += clean_broken_refs(value, available, visited)
    return removed


def _ref_of(node: Any) -> Any:
    return node.get("$ref") if isinstance(node, dict) else None


def _expand_component_chain(names: set[str], group: dict[str, Any], prefix: str) -> set[str]:
    """Add entries reached through entry-to-entry refs (e.g. a response that is a $ref to another)."""
    pending = list(names)
    while pending:
        target = component_name(_ref_of(group.get(pending.pop())), prefix)
        if target is not None and target not in names:
            names.add(target)
            pending.append(target)
    return names


def _operation_component_refs(
    doc: dict[str, Any], *, policy: SimplifyPolicy = SimplifyPolicy()
) -> tuple[set[str], set[str]]:
    used_responses: set[str] = {policy.error_response}
    used_request_bodies: set[str] = set()
    paths = doc.get("paths")
    if isinstance(paths, dict):
        for path_item in paths.values():
            for _method, operation in iter_operations(path_item):
                responses = operation.get("responses")
                if isinstance(responses, dict):
                    for response in responses.values():
                        name = component_name(_ref_of(response), RESPONSE_REF_PREFIX)
                        if name is not None:
                            used_responses.add(name)
                name = component_name(_ref_of(operation.get("requestBody")), REQUEST_BODY_REF_PREFIX)
                if name is not None:
                    used_request_bodies.add(name)
    return (
        _expand_component_chain(used_responses, component_group(doc, "responses"), RESPONSE_REF_PREFIX),
        _expand_component_chain(used_request_bodies, component_group(doc, "requestBodies"), REQUEST_BODY_REF_PREFIX),
    )


def prune_unused_schemas(doc: Json, used: set[str], *, policy: SimplifyPolicy = SimplifyPolicy()) -> PruneStats:
    """Phase 3: delete unused schemas, repair dangling refs, prune responses/requestBodies."""
    stats = PruneStats()
    if not isinstance(doc, dict):
        return stats

    schemas = component_group(doc, "schemas")
    stats.schemas_before = len(schemas)
    for name in list(schemas.keys()):
        if name not in used:
            del schemas[name]
    stats.schemas_after = len(schemas)

    for group in ("schemas", "responses", "requestBodies", "parameters"):
        for entry in list(component_group(doc, group).values()):
            stats.broken_refs_removed += clean_broken_refs(entry, schemas)
    paths = doc.get("paths")
    if isinstance(paths, dict):
        for path_item in paths.values():
            stats.broken_refs_removed += clean_broken_refs(path_item, schemas)

    used_responses, used_request_bodies = _operation_component_refs(doc, policy=policy)

    responses = component_group(doc, "responses")
    for name in list(responses.keys()):
        if name not in used_responses:
            del responses[name]
            stats.responses_removed += 1

    request_bodies = component_group(doc, "requestBodies")
    for name in list(request_bodies.keys()):
        if name not in used_request_bodies:
            del request_bodies[name]
            stats.request_bodies_removed += 1

    return stats


def prune_document(doc: Json, *, policy: SimplifyPolicy = SimplifyPolicy()) -> PruneStats:
    used = find_used_schemas(doc, policy=policy)
    return prune_unused_schemas(doc, used, policy=policy)
