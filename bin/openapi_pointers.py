"""
Shared helpers for walking and addressing an in-memory OpenAPI document.

Every stage of the simplifier operates on plain dict/list/scalar trees, so the
helpers here only know about JSON Pointer syntax (RFC 6901) and the handful of
`#/components/...` prefixes OpenAPI uses.
"""

import re
import sys
from typing import Any, Optional, Union


Json = Union[dict[str, Any], list[Any], str, int, float, bool, None]

HTTP_METHODS: set[str] = {
    "get",
    "put",
    "post",
    "delete",
    "options",
    "head",
    "patch",
    "trace",
}

SCHEMA_REF_PREFIX = "#/components/schemas/"
PARAMETER_REF_PREFIX = "#/components/parameters/"
RESPONSE_REF_PREFIX = "#/components/responses/"
REQUEST_BODY_REF_PREFIX = "#/components/requestBodies/"


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def decode_pointer_token(token: str) -> str:
    # JSON Pointer escaping per RFC 6901
    return token.replace("~1", "/").replace("~0", "~")


def encode_pointer_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def pointer_segments(pointer: str) -> list[str]:
    """
    Split a local pointer ("#/a/b~1c") into decoded segments (["a", "b/c"]).
    Anything that is not a local pointer yields no segments.
    """
    if not isinstance(pointer, str) or not pointer.startswith("#/"):
        return []
    return [decode_pointer_token(t) for t in pointer[2:].split("/")]


def schema_ref(name: str) -> str:
    return SCHEMA_REF_PREFIX + encode_pointer_token(name)


def component_name(ref: Any, prefix: str) -> Optional[str]:
    """
    Return the component name addressed by `ref` under `prefix`, e.g.
    component_name("#/components/schemas/Foo", SCHEMA_REF_PREFIX) -> "Foo".
    Sub-path refs ("#/components/schemas/Foo/properties/x") return None.
    """
    if not isinstance(ref, str) or not ref.startswith(prefix):
        return None
    remainder = ref[len(prefix):]
    if remainder == "" or "/" in remainder:
        return None
    return decode_pointer_token(remainder)


def component_group(doc: Json, group: str) -> dict[str, Any]:
    """Return doc.components[group], or an empty (detached) dict if it is missing."""
    components = doc.get("components") if isinstance(doc, dict) else None
    group_obj = components.get(group) if isinstance(components, dict) else None
    return group_obj if isinstance(group_obj, dict) else {}


def resolve_pointer_with_parent(root: Json, pointer: str) -> Optional[tuple[Any, Union[str, int], Json]]:
    """
    Resolve a local pointer against the live document and return
    (parent_container, key_in_parent, value).

    The tree is re-read on every call since earlier rewrites may have changed
    what a pointer addresses. A location already rewritten into a canonical
    schema ref is followed into that component. Returns None when the pointer
    does not address an existing location.
    """
    segments = pointer_segments(pointer)
    if not segments:
        return None

    parent: Any = None
    key: Union[str, int, None] = None
    cur: Any = root
    for segment in segments:
        if isinstance(cur, dict):
            if segment not in cur:
                name = component_name(cur.get("$ref"), SCHEMA_REF_PREFIX)
                target = component_group(root, "schemas").get(name) if name is not None else None
                if not isinstance(target, dict) or segment not in target:
                    return None
                cur = target
            parent, key, cur = cur, segment, cur[segment]
        elif isinstance(cur, list):
            try:
                idx = int(segment)
            except ValueError:
                return None
            if idx < 0 or idx >= len(cur):
                return None
            parent, key, cur = cur, idx, cur[idx]
        else:
            return None
    if parent is None or key is None:
        return None
    return parent, key, cur


def to_pascal_case(value: Any) -> str:
    if not value:
        return ""
    cleaned = re.sub(r"([a-z\d])([A-Z])", r"\1 \2", str(value))
    cleaned = re.sub(r"[^a-zA-Z\d]+", " ", cleaned).strip()
    return "".join(word[0].upper() + word[1:] for word in cleaned.split(" ") if word)


def iter_operations(path_item: Any):
    """Yield (method, operation) for every HTTP operation of a path item."""
    if not isinstance(path_item, dict):
        return
    for method, operation in path_item.items():
        if isinstance(method, str) and method.lower() in HTTP_METHODS and isinstance(operation, dict):
            yield method.lower(), operation


def iter_content_schemas(container: Any):
    """Yield (media_type, schema) for each `content` entry of a parameter/body/response."""
    if not isinstance(container, dict):
        return
    content = container.get("content")
    if not isinstance(content, dict):
        return
    for media_type, media_obj in content.items():
        if isinstance(media_obj, dict) and isinstance(media_obj.get("schema"), dict):
            yield media_type, media_obj["schema"]
