"""
Restrict an OpenAPI document to the operations named in an endpoint allow-list.

An allow-list is a list of records like:

  { "pathPattern": "/users/{id}", "method": "GET", "toolName": "getUser" }

Records with "disabled": true are ignored. Every remaining pathPattern must be
a key of the document's `paths`; anything else is a configuration error and
aborts the run before the document is touched.
"""

from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from openapi_pointers import HTTP_METHODS, PARAMETER_REF_PREFIX, Json, component_name, eprint


@dataclass(frozen=True)
class Endpoint:
    path_pattern: str
    method: str
    tool_name: str


def parse_endpoints(raw: Any) -> list[Endpoint]:
    """
    Validate a loaded allow-list and return its enabled endpoints.
    Methods are lower-cased to match OpenAPI path item keys.
    """
    if not isinstance(raw, list):
        raise RuntimeError(f"Endpoint list must be a JSON/YAML array at top-level (got {type(raw).__name__}).")

    out: list[Endpoint] = []
    for idx, record in enumerate(raw):
        if not isinstance(record, dict):
            raise RuntimeError(f"Endpoint #{idx} must be an object (got {type(record).__name__}).")
        if record.get("disabled") is True:
            continue
        path_pattern = record.get("pathPattern")
        method = record.get("method")
        tool_name = record.get("toolName")
        for label, value in (("pathPattern", path_pattern), ("method", method), ("toolName", tool_name)):
            if not isinstance(value, str) or not value.strip():
                raise RuntimeError(f"Endpoint #{idx} is missing a string {label!r}.")
        method = method.strip().lower()
        if method not in HTTP_METHODS:
            raise RuntimeError(f"Invalid HTTP method {record['method']!r} for endpoint {tool_name!r}.")
        out.append(Endpoint(path_pattern=path_pattern, method=method, tool_name=tool_name.strip()))
    return out


def check_endpoint_paths(doc: Json, endpoints: list[Endpoint]) -> None:
    paths_obj = doc.get("paths") if isinstance(doc, dict) else None
    if not isinstance(paths_obj, dict):
        raise RuntimeError("OpenAPI document must have a top-level 'paths' object.")
    for endpoint in endpoints:
        if endpoint.path_pattern not in paths_obj:
            raise RuntimeError(f'Path "{endpoint.path_pattern}" not found in OpenAPI spec.')


def _inline_parameter_refs(parameters: list[Any], component_params: dict[str, Any]) -> list[Any]:
    out: list[Any] = []
    for param in parameters:
        if isinstance(param, dict):
            name = component_name(param.get("$ref"), PARAMETER_REF_PREFIX)
            resolved = component_params.get(name) if name is not None else None
            if isinstance(resolved, dict):
                out.append(deepcopy(resolved))
                continue
        out.append(param)
    return out


def filter_paths(doc: Json, endpoints: list[Endpoint]) -> int:
    """
    Drop every path and operation not in `endpoints`, in place.

    Kept operations get their `operationId` from the endpoint's toolName and
    their operation-level `#/components/parameters/...` refs inlined.
    Path-level keys that are not operations (shared `parameters`, `summary`,
    `servers`, ...) are preserved. Returns the number of kept operations.
    """
    check_endpoint_paths(doc, endpoints)
    paths_obj: dict[str, Any] = doc["paths"]
    components = doc.get("components")
    component_params = components.get("parameters") if isinstance(components, dict) else None
    if not isinstance(component_params, dict):
        component_params = {}

    by_path: dict[str, dict[str, Endpoint]] = {}
    for endpoint in endpoints:
        by_path.setdefault(endpoint.path_pattern, {}).setdefault(endpoint.method, endpoint)

    kept = 0
    for path in list(paths_obj.keys()):
        wanted = by_path.get(path)
        path_item = paths_obj[path]
        if not wanted or not isinstance(path_item, dict):
            del paths_obj[path]
            continue

        found: set[str] = set()
        for key in list(path_item.keys()):
            if not isinstance(key, str) or key.lower() not in HTTP_METHODS:
                continue
            endpoint = wanted.get(key.lower())
            operation = path_item[key]
            if endpoint is None or not isinstance(operation, dict):
                del path_item[key]
                continue

            operation["operationId"] = endpoint.tool_name
            if not operation.get("description") and operation.get("summary"):
                operation["description"] = operation["summary"]
            if isinstance(operation.get("parameters"), list):
                operation["parameters"] = _inline_parameter_refs(operation["parameters"], component_params)
            found.add(key.lower())
            kept += 1

        for method, endpoint in wanted.items():
            if method not in found:
                eprint(f"warning: Method {method.upper()} not found for path {path!r} (tool {endpoint.tool_name!r}).")

        if not found:
            del paths_obj[path]

    return kept
