"""
Local, depth/count-driven rewrites that bound schema complexity before refs
are hoisted and unused components pruned.

All rewrites are intentionally lossy: consumers of the trimmed spec only need
a rough shape of each payload, not an exact discriminated union.
"""

from dataclasses import dataclass
from typing import Any, Optional

from openapi_pointers import (
    SCHEMA_REF_PREFIX,
    Json,
    component_group,
    component_name,
    iter_content_schemas,
    iter_operations,
    resolve_pointer_with_parent,
)
from simplify_policy import SimplifyPolicy


_UNION_KEYS: tuple[str, ...] = ("anyOf", "oneOf")


@dataclass
class CleanStats:
    unions_simplified: int = 0
    all_of_flattened: int = 0
    properties_reduced: int = 0
    nested_flattened: int = 0


def strip_vendor_fields(
    node: Json,
    *,
    strip_keys: set[str],
    strip_extensions: bool = True,
    keep_keys: Optional[set[str]] = None,
) -> Json:
    """
    Remove vendor-specific keys from all objects.
    Keys listed in strip_keys are always removed; keys starting with 'x-' are
    removed when strip_extensions is set, unless listed in keep_keys.

    Names inside a `properties` map are payload field names, not extensions:
    only strip_keys applies to them, and a stripped name is also dropped from
    the sibling `required` list.
    """
    if isinstance(node, list):
        return [
            strip_vendor_fields(v, strip_keys=strip_keys, strip_extensions=strip_extensions, keep_keys=keep_keys)
            for v in node
        ]
    if isinstance(node, dict):
        out: dict[str, Any] = {}
        for k, v in node.items():
            if k in strip_keys:
                continue
            if strip_extensions and isinstance(k, str) and k.startswith("x-"):
                if not (keep_keys and k in keep_keys):
                    continue
            if k == "properties" and isinstance(v, dict):
                out[k] = {
                    name: strip_vendor_fields(
                        prop, strip_keys=strip_keys, strip_extensions=strip_extensions, keep_keys=keep_keys
                    )
                    for name, prop in v.items()
                    if name not in strip_keys
                }
                continue
            out[k] = strip_vendor_fields(
                v, strip_keys=strip_keys, strip_extensions=strip_extensions, keep_keys=keep_keys
            )
        if isinstance(out.get("required"), list) and isinstance(node.get("properties"), dict):
            dropped = {name for name in node["properties"] if name in strip_keys}
            if dropped:
                out["required"] = [name for name in out["required"] if name not in dropped]
        return out
    return node


def _is_nullable_object_marker(item: Any) -> bool:
    return (
        isinstance(item, dict)
        and item.get("type") == "object"
        and item.get("nullable") is True
        and len(item) <= 2
    )


def _annotate(schema: dict[str, Any], note: str) -> None:
    schema["description"] = f"{schema.get('description') or ''} {note}".strip()


def simplify_union(schema: Any) -> bool:
    """
    Collapse anyOf/oneOf unions in place. Returns True if the schema changed.

    - anyOf [ {$ref}, {type: object, nullable: true} ] -> {$ref, nullable: true}
    - anyOf/oneOf with more than two branches -> first branch's type, nullable,
      with a description note recording the branch count
    """
    if not isinstance(schema, dict):
        return False

    changed = False
    for key in _UNION_KEYS:
        branches = schema.get(key)
        if not isinstance(branches, list):
            continue

        if key == "anyOf" and len(branches) == 2:
            ref_item = next((b for b in branches if isinstance(b, dict) and isinstance(b.get("$ref"), str)), None)
            if ref_item is not None and any(_is_nullable_object_marker(b) for b in branches):
                del schema[key]
                schema["$ref"] = ref_item["$ref"]
                schema["nullable"] = True
                changed = True
        elif len(branches) > 2:
            first = branches[0] if isinstance(branches[0], dict) else {}
            del schema[key]
            schema["type"] = first.get("type") or "object"
            schema["nullable"] = True
            _annotate(schema, f"[Simplified from {len(branches)} options]")
            changed = True
    return changed


def _resolve_member_ref(ref: str, doc: Json) -> Optional[dict[str, Any]]:
    schemas = component_group(doc, "schemas")
    name = component_name(ref, SCHEMA_REF_PREFIX)
    if name is not None:
        target = schemas.get(name)
    else:
        resolved = resolve_pointer_with_parent(doc, ref)
        target = resolved[2] if resolved is not None else None
    return target if isinstance(target, dict) else None


def merge_all_of(members: list[Any], doc: Json) -> dict[str, Any]:
    """
    Merge the properties and required lists of every allOf member into one
    object schema. Referenced members are looked up in the document; the
    first description found wins and later members never override it.
    """
    merged: dict[str, Any] = {"type": "object", "properties": {}}
    required: list[Any] = []

    for item in members:
        if not isinstance(item, dict):
            continue
        if isinstance(item.get("$ref"), str):
            source = _resolve_member_ref(item["$ref"], doc)
            if source is None:
                continue
        else:
            source = item

        if isinstance(source.get("properties"), dict):
            merged["properties"].update(source["properties"])
        if isinstance(source.get("required"), list):
            required.extend(source["required"])
        if source.get("description") and "description" not in merged:
            merged["description"] = source["description"]

    if required:
        merged["required"] = list(dict.fromkeys(required))
    return merged


def flatten_all_of(schema: dict[str, Any], doc: Json) -> bool:
    members = schema.get("allOf")
    if not isinstance(members, list):
        return False

    merged = merge_all_of(members, doc)
    del schema["allOf"]

    properties = merged["properties"]
    if isinstance(schema.get("properties"), dict):
        properties.update(schema["properties"])
    required = list(merged.get("required", []))
    if isinstance(schema.get("required"), list):
        required.extend(schema["required"])

    schema["type"] = "object"
    schema["properties"] = properties
    if required:
        schema["required"] = list(dict.fromkeys(required))
    if not schema.get("description") and merged.get("description"):
        schema["description"] = merged["description"]
    return True


def reduce_properties(schema: dict[str, Any], *, policy: SimplifyPolicy) -> bool:
    """
    Keep at most policy.max_properties properties: priority names first (in
    priority order), then the remaining ones in declaration order.
    """
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return False
    limit = policy.max_properties
    count = len(properties)
    if count <= limit:
        return False

    kept: dict[str, Any] = {}
    for key in policy.priority_properties:
        if key in properties and len(kept) < limit:
            kept[key] = properties[key]
    for key, value in properties.items():
        if len(kept) >= limit:
            break
        if key not in kept:
            kept[key] = value

    schema["properties"] = kept
    schema["additionalProperties"] = True
    _annotate(schema, f"[Note: Simplified from {count} properties to {limit} most common ones]")
    return True


def simplify_nested_properties(
    properties: Any,
    *,
    policy: SimplifyPolicy,
    stats: CleanStats,
    depth: int = 0,
) -> None:
    max_depth = policy.max_nested_depth
    if not isinstance(properties, dict) or depth >= max_depth:
        return

    for prop in properties.values():
        if not isinstance(prop, dict):
            continue
        if isinstance(prop.get("properties"), dict):
            if depth == max_depth - 1:
                prop["type"] = "object"
                _annotate(prop, "[Simplified: nested object]")
                del prop["properties"]
                prop.pop("additionalProperties", None)
                stats.nested_flattened += 1
            else:
                simplify_nested_properties(prop["properties"], policy=policy, stats=stats, depth=depth + 1)
        if simplify_union(prop):
            stats.unions_simplified += 1


def flatten_component_schemas(doc: Json, *, policy: SimplifyPolicy, stats: CleanStats) -> None:
    for schema in component_group(doc, "schemas").values():
        if not isinstance(schema, dict):
            continue
        if simplify_union(schema):
            stats.unions_simplified += 1
        if flatten_all_of(schema, doc):
            stats.all_of_flattened += 1
        if reduce_properties(schema, policy=policy):
            stats.properties_reduced += 1
        if isinstance(schema.get("properties"), dict):
            simplify_nested_properties(schema["properties"], policy=policy, stats=stats)


def simplify_path_unions(paths: Any, *, stats: CleanStats) -> None:
    if not isinstance(paths, dict):
        return

    for path_item in paths.values():
        for _method, operation in iter_operations(path_item):
            candidates: list[Any] = []
            for param in operation.get("parameters") or []:
                if isinstance(param, dict):
                    candidates.append(param.get("schema"))
            candidates.extend(schema for _mt, schema in iter_content_schemas(operation.get("requestBody")))
            responses = operation.get("responses")
            if isinstance(responses, dict):
                for response in responses.values():
                    candidates.extend(schema for _mt, schema in iter_content_schemas(response))
            for schema in candidates:
                if simplify_union(schema):
                    stats.unions_simplified += 1


def clean_document(doc: Json, *, policy: SimplifyPolicy) -> CleanStats:
    """Run every structural rewrite over `components.schemas` and `paths`, in place."""
    stats = CleanStats()
    if not isinstance(doc, dict):
        return stats

    strip_keys = set(policy.strip_keys)
    keep_keys = set(policy.keep_extension_keys)
    components = doc.get("components")
    if isinstance(components, dict) and isinstance(components.get("schemas"), dict):
        components["schemas"] = strip_vendor_fields(
            components["schemas"],
            strip_keys=strip_keys,
            strip_extensions=policy.strip_vendor_extensions,
            keep_keys=keep_keys,
        )
        flatten_component_schemas(doc, policy=policy, stats=stats)

    if isinstance(doc.get("paths"), dict):
        doc["paths"] = strip_vendor_fields(
            doc["paths"],
            strip_keys=strip_keys,
            strip_extensions=policy.strip_vendor_extensions,
            keep_keys=keep_keys,
        )
        simplify_path_unions(doc["paths"], stats=stats)

    return stats
