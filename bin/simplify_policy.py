"""
Policy constants for the simplifier.

The defaults are tuned for the Microsoft Graph API family (OData error
envelope, `@odata.type` discriminators). Other API families can override any
field through a JSON/YAML policy file passed with `--policy`.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any


DEFAULT_PRIORITY_PROPERTIES: tuple[str, ...] = (
    "id",
    "name",
    "displayName",
    "description",
    "createdDateTime",
    "lastModifiedDateTime",
    "status",
    "state",
    "type",
    "value",
    "email",
    "userPrincipalName",
    "title",
    "content",
    "body",
    "subject",
    "message",
    "attachments",
    "error",
    "code",
    "details",
    "url",
    "href",
    "path",
    "method",
    "enabled",
)

DEFAULT_ERROR_SCHEMAS: tuple[str, ...] = (
    "microsoft.graph.ODataErrors.ODataError",
    "microsoft.graph.ODataErrors.MainError",
    "microsoft.graph.ODataErrors.ErrorDetails",
    "microsoft.graph.ODataErrors.InnerError",
)


@dataclass(frozen=True)
class SimplifyPolicy:
    max_properties: int = 25
    max_nested_depth: int = 3
    priority_properties: tuple[str, ...] = DEFAULT_PRIORITY_PROPERTIES
    strip_keys: tuple[str, ...] = ("@odata.type",)
    strip_vendor_extensions: bool = True
    keep_extension_keys: tuple[str, ...] = field(default_factory=tuple)
    error_schemas: tuple[str, ...] = DEFAULT_ERROR_SCHEMAS
    error_response: str = "error"


def _normalize_string_list(values: Any, *, label: str) -> tuple[str, ...]:
    if not isinstance(values, list):
        raise RuntimeError(f"Policy {label} must be a list of strings.")
    out: list[str] = []
    for v in values:
        if v is None:
            continue
        if not isinstance(v, str):
            raise RuntimeError(f"Policy {label} must be a list of strings.")
        v = v.strip()
        if v:
            out.append(v)
    return tuple(out)


def _positive_int(value: Any, *, label: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise RuntimeError(f"Policy {label} must be a positive integer (got {value!r}).")
    return value


def policy_from_mapping(raw: Any, *, base: SimplifyPolicy = SimplifyPolicy()) -> SimplifyPolicy:
    """
    Build a policy from a mapping of overrides, e.g. a loaded policy file:

      max_properties: 40
      priority_properties: [id, name]
      error_schemas: [ErrorResponse]
    """
    if not isinstance(raw, dict):
        raise RuntimeError(f"Policy must be a JSON/YAML object at top-level (got {type(raw).__name__}).")

    known = {f.name for f in fields(SimplifyPolicy)}
    unknown = sorted(k for k in raw if k not in known)
    if unknown:
        raise RuntimeError(f"Unknown policy keys: {', '.join(map(str, unknown))}.")

    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        if key in ("max_properties", "max_nested_depth"):
            overrides[key] = _positive_int(value, label=key)
        elif key == "strip_vendor_extensions":
            if not isinstance(value, bool):
                raise RuntimeError("Policy strip_vendor_extensions must be a boolean.")
            overrides[key] = value
        elif key == "error_response":
            if not isinstance(value, str) or not value.strip():
                raise RuntimeError("Policy error_response must be a non-empty string.")
            overrides[key] = value.strip()
        else:
            overrides[key] = _normalize_string_list(value, label=key)
    return replace(base, **overrides)
