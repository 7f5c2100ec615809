"""
Rewrite every non-canonical local $ref into a `#/components/schemas/<Name>` ref.

A canonical ref addresses a top-level component directly:

  { "$ref": "#/components/schemas/Foo" }          canonical
  { "$ref": "#/components/parameters/Limit" }     canonical (non-schema component)
  { "$ref": "#/components/schemas/Foo/properties/bar" }  hoisted
  { "$ref": "#/properties/sharedThing" }           hoisted

Hoisting copies the addressed schema into `components.schemas` under a fresh,
readable name and rewrites the addressed location itself into a ref to the new
component, so both the original site and every usage share one definition.
"""

from copy import deepcopy
from typing import Any, Optional

from openapi_pointers import (
    SCHEMA_REF_PREFIX,
    Json,
    component_name,
    eprint,
    iter_content_schemas,
    iter_operations,
    pointer_segments,
    resolve_pointer_with_parent,
    schema_ref,
    to_pascal_case,
)


# Keywords whose value is a single subschema.
_SUBSCHEMA_KEYS: tuple[str, ...] = ("not", "contains", "propertyNames", "if", "then", "else")

# Keywords whose value is a list of subschemas.
_SUBSCHEMA_LIST_KEYS: tuple[str, ...] = ("allOf", "anyOf", "oneOf", "prefixItems")

# Keywords whose value is a subschema only when it is an object (else a boolean).
_OPTIONAL_SUBSCHEMA_KEYS: tuple[str, ...] = (
    "additionalProperties",
    "additionalItems",
    "unevaluatedItems",
    "unevaluatedProperties",
)

# Keywords whose value maps names to subschemas.
_SUBSCHEMA_MAP_KEYS: tuple[str, ...] = ("patternProperties", "dependencies", "dependentSchemas", "properties")

_STRUCTURAL_SEGMENTS: set[str] = {
    "components",
    "schemas",
    "$defs",
    "schema",
    "content",
    "responses",
    "requestBody",
    "properties",
    "definitions",
    "pathItems",
    "allOf",
    "anyOf",
    "oneOf",
    "then",
    "else",
    "if",
}


def should_hoist_ref(ref: Any) -> bool:
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return False
    if ref.startswith("#/$defs/"):
        return False
    if ref.startswith(SCHEMA_REF_PREFIX):
        return "/" in ref[len(SCHEMA_REF_PREFIX):]
    if ref.startswith("#/components/"):
        return False
    return True


def _pointer_name_segments(pointer: str, context_segment: str) -> list[str]:
    segments = [s for s in pointer_segments(pointer) if s != ""]
    if not segments:
        return []

    if segments[:2] == ["components", "schemas"]:
        segments = segments[2:]
    elif segments[0] == "$defs":
        segments = segments[1:]
    elif segments[0] == "paths":
        if "schema" in segments:
            last_schema = len(segments) - 1 - segments[::-1].index("schema")
            segments = segments[last_schema + 1:]
        else:
            segments = segments[-2:]

    if segments and segments[0] == "properties":
        segments = segments[1:]

    words = [to_pascal_case(s) for s in segments if s not in _STRUCTURAL_SEGMENTS]
    words = [w for w in words if w]
    if words and context_segment and words[0] == context_segment:
        words = words[1:]
    return words or ["Component"]


def generate_component_name(context_name: str, pointer: str, existing_names: set[str]) -> str:
    """
    Derive a unique component name from the context a schema was reached
    through and the trailing segments of its pointer, e.g.

      ("getTest", "#/components/schemas/TestResponse/properties/nested")
          -> "GetTestTestResponseNested"

    The chosen name is added to existing_names.
    """
    context_segment = to_pascal_case(context_name or "")
    segments = _pointer_name_segments(pointer, context_segment)

    base = context_segment
    if not base:
        base = segments.pop(0) if segments else "Hoisted"
    candidate = base + "".join(segments) or "HoistedComponent"

    unique = candidate
    counter = 1
    while unique in existing_names:
        counter += 1
        unique = f"{candidate}{counter}"
    existing_names.add(unique)
    return unique


class RefNormalizer:
    """
    Hoist every non-canonical $ref reachable from the document's schema-bearing
    locations. One instance covers one run: the pointer memo, the reserved
    names and the visited set all live here.
    """

    def __init__(self, doc: dict[str, Any]) -> None:
        self.doc = doc
        if doc.get("components") is None:
            doc["components"] = {}
        components = doc["components"]
        if not isinstance(components, dict):
            raise RuntimeError("Top-level 'components' exists but is not an object; cannot hoist schemas.")
        if components.get("schemas") is None:
            components["schemas"] = {}
        self.schemas: dict[str, Any] = components["schemas"]
        if not isinstance(self.schemas, dict):
            raise RuntimeError("components.schemas exists but is not an object; cannot hoist schemas.")

        # pointer -> component name
        self._ref_map: dict[str, str] = {}
        self._reserved_names: set[str] = set(self.schemas.keys())
        # id -> node; holding the node keeps its id from being reused
        self._visited: dict[int, Any] = {}
        self.hoisted_count = 0

    def _hoist_ref(self, ref: str, context_name: str) -> Optional[str]:
        if not should_hoist_ref(ref):
            return None

        if ref in self._ref_map:
            return schema_ref(self._ref_map[ref])

        resolved = resolve_pointer_with_parent(self.doc, ref)
        if resolved is None:
            eprint(f"warning: Cannot resolve $ref {ref!r}; leaving it unchanged.")
            return None
        parent, key, value = resolved
        if not isinstance(value, dict):
            eprint(f"warning: $ref {ref!r} does not address a schema object; leaving it unchanged.")
            return None

        target_ref = value.get("$ref")
        if isinstance(target_ref, str) and not should_hoist_ref(target_ref):
            existing = component_name(target_ref, SCHEMA_REF_PREFIX)
            if existing is not None:
                self._ref_map[ref] = existing
                return target_ref

        context = context_name
        if not context and ref.startswith(SCHEMA_REF_PREFIX):
            context = ref[len(SCHEMA_REF_PREFIX):].split("/")[0]

        name = generate_component_name(context, ref, self._reserved_names)
        self._ref_map[ref] = name
        # Copy before relocating so the new component never aliases the old site.
        cloned = deepcopy(value)
        self.schemas[name] = cloned
        self.hoisted_count += 1

        replacement = schema_ref(name)
        parent[key] = {"$ref": replacement}

        self.process_schema(cloned, name)
        return replacement

    def process_schema(self, schema: Any, context_name: str) -> None:
        if not isinstance(schema, dict) or id(schema) in self._visited:
            return
        self._visited[id(schema)] = schema

        if isinstance(schema.get("$ref"), str):
            normalized = self._hoist_ref(schema["$ref"], context_name)
            if normalized:
                schema["$ref"] = normalized

        for key in _SUBSCHEMA_LIST_KEYS:
            if isinstance(schema.get(key), list):
                for sub in schema[key]:
                    self.process_schema(sub, context_name)

        for key in _SUBSCHEMA_KEYS:
            if schema.get(key):
                self.process_schema(schema[key], context_name)

        items = schema.get("items")
        if isinstance(items, list):
            for item in items:
                self.process_schema(item, context_name)
        elif items:
            self.process_schema(items, context_name)

        for key in _OPTIONAL_SUBSCHEMA_KEYS:
            if isinstance(schema.get(key), dict):
                self.process_schema(schema[key], context_name)

        for key in _SUBSCHEMA_MAP_KEYS:
            if isinstance(schema.get(key), dict):
                # list(): hoisting may replace entries of this very map
                for sub in list(schema[key].values()):
                    self.process_schema(sub, context_name)

    def process_parameter(self, parameter: Any, context_name: str) -> None:
        if not isinstance(parameter, dict):
            return

        derived = context_name or ""
        param_name = parameter.get("name")
        if isinstance(param_name, str) and param_name:
            derived = f"{derived} {param_name}" if derived else param_name
        if not derived:
            derived = "Parameter"

        if isinstance(parameter.get("schema"), dict):
            self.process_schema(parameter["schema"], derived)
        for media_type, schema in iter_content_schemas(parameter):
            self.process_schema(schema, f"{derived} {media_type}" if media_type else derived)

    def _process_content(self, container: Any, context_name: str) -> None:
        for _media_type, schema in iter_content_schemas(container):
            self.process_schema(schema, context_name)

    def normalize(self) -> int:
        """Run the pass over the whole document; returns the number of hoisted schemas."""
        for name, schema in list(self.schemas.items()):
            self.process_schema(schema, name)

        components = self.doc["components"]
        parameters = components.get("parameters")
        if isinstance(parameters, dict):
            for name, parameter in parameters.items():
                self.process_parameter(parameter, f"ComponentParameter {name}")

        paths = self.doc.get("paths")
        if isinstance(paths, dict):
            for path, path_item in paths.items():
                if not isinstance(path_item, dict):
                    continue
                if isinstance(path_item.get("parameters"), list):
                    for parameter in path_item["parameters"]:
                        self.process_parameter(parameter, f"Path {path}")

                for method, operation in iter_operations(path_item):
                    context = operation.get("operationId") or f"{method.upper()} {path}"
                    if isinstance(operation.get("parameters"), list):
                        for parameter in operation["parameters"]:
                            self.process_parameter(parameter, f"{context} parameter")
                    self._process_content(operation.get("requestBody"), context)
                    responses = operation.get("responses")
                    if isinstance(responses, dict):
                        for response in responses.values():
                            self._process_content(response, context)

        responses = components.get("responses")
        if isinstance(responses, dict):
            for response in responses.values():
                self._process_content(response, "ComponentResponse")

        request_bodies = components.get("requestBodies")
        if isinstance(request_bodies, dict):
            for request_body in request_bodies.values():
                self._process_content(request_body, "ComponentRequestBody")

        return self.hoisted_count


def normalize_schema_refs(doc: Json) -> int:
    if not isinstance(doc, dict):
        return 0
    return RefNormalizer(doc).normalize()
