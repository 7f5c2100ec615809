#!/usr/bin/env python3
"""
Trim an OpenAPI document down to a curated list of endpoints.

Pipeline (each stage mutates the same in-memory document):

  1. filter_endpoints  keep only allow-listed (path, method) pairs
  2. clean_schemas     strip vendor fields, collapse unions/allOf, cap size
  3. normalize_refs    hoist nested-path $refs into named components
  4. prune_schemas     drop schemas/responses/requestBodies nothing uses

Usage:
    python bin/simplify_openapi.py endpoints.json openapi.yaml -o openapi-trimmed.yaml
    python bin/simplify_openapi.py endpoints.json openapi.yaml -o out.json --policy policy.yaml

The endpoints file is a JSON/YAML list of
{ "pathPattern": ..., "method": ..., "toolName": ..., "disabled"?: bool }.
The output format follows the output file suffix (.json, otherwise YAML).
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml

from clean_schemas import clean_document
from filter_endpoints import Endpoint, filter_paths, parse_endpoints
from normalize_refs import normalize_schema_refs
from openapi_pointers import Json, eprint
from prune_schemas import prune_document
from simplify_policy import SimplifyPolicy, policy_from_mapping


class _NoAliasDumper(yaml.SafeDumper):
    # Shared subtrees are written out in full rather than as &anchors.
    def ignore_aliases(self, data: Any) -> bool:
        return True


def load_document(path: Path) -> Json:
    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        if suffix == ".json":
            return json.load(f)
        # YAML is a superset of JSON, so this also covers extension-less files.
        return yaml.safe_load(f)


def render_document(doc: Json, path: Path) -> str:
    if path.suffix.lower() == ".json":
        return json.dumps(doc, indent=2, ensure_ascii=True, sort_keys=False) + "\n"
    return yaml.dump(doc, Dumper=_NoAliasDumper, sort_keys=False, allow_unicode=True)


def load_endpoints(path: Path) -> list[Endpoint]:
    return parse_endpoints(load_document(path))


def load_policy(path: Path, *, base: SimplifyPolicy = SimplifyPolicy()) -> SimplifyPolicy:
    raw = load_document(path)
    if raw is None:
        return base
    return policy_from_mapping(raw, base=base)


def simplify_document(
    doc: Json,
    endpoints: list[Endpoint],
    *,
    policy: SimplifyPolicy = SimplifyPolicy(),
) -> Json:
    """Run the whole pipeline over `doc` in place and return it."""
    if not isinstance(doc, dict):
        raise RuntimeError(f"OpenAPI document must be an object at the top-level (got {type(doc).__name__}).")

    kept = filter_paths(doc, endpoints)
    eprint(f"Kept {kept} operation{'' if kept == 1 else 's'} across {len(doc['paths'])} paths")

    clean_stats = clean_document(doc, policy=policy)
    eprint(
        f"   Simplified {clean_stats.unions_simplified} unions, flattened {clean_stats.all_of_flattened} allOf, "
        f"reduced {clean_stats.properties_reduced} oversized objects, "
        f"flattened {clean_stats.nested_flattened} nested objects"
    )

    eprint("Normalizing inline schema references...")
    hoisted = normalize_schema_refs(doc)
    if hoisted:
        eprint(f"   Hoisted {hoisted} inline schema{'' if hoisted == 1 else 's'} into components")
    else:
        eprint("   No inline schema references required hoisting")

    eprint("Pruning unused schemas...")
    stats = prune_document(doc, policy=policy)
    removed = stats.schemas_before - stats.schemas_after
    reduction = (removed / stats.schemas_before * 100) if stats.schemas_before else 0.0
    eprint(f"   Removed {removed} unused schemas ({reduction:.1f}% reduction)")
    eprint(f"   Final schema count: {stats.schemas_after} (from {stats.schemas_before})")
    eprint(f"   Removed {stats.responses_removed} unused responses and {stats.request_bodies_removed} unused request bodies")
    return doc


def create_and_save_simplified_openapi(
    endpoints_file: Path,
    openapi_file: Path,
    output_file: Path,
    *,
    policy: SimplifyPolicy = SimplifyPolicy(),
) -> Json:
    """
    Load both inputs, run the pipeline and write the trimmed document.
    The output is rendered in full before the file is opened, so any failure
    leaves no output file behind.
    """
    endpoints = load_endpoints(endpoints_file)
    doc = load_document(openapi_file)
    out_doc = simplify_document(doc, endpoints, policy=policy)
    content = render_document(out_doc, output_file)
    output_file.write_text(content, encoding="utf-8")
    return out_doc


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Trim an OpenAPI document to an endpoint allow-list and normalize its schema refs."
    )
    p.add_argument("endpoints", help="Path to the JSON/YAML endpoint allow-list.")
    p.add_argument("openapi", help="Path to the source OpenAPI JSON/YAML document.")
    p.add_argument(
        "-o",
        "--output",
        required=True,
        help="Write the trimmed document to this file (.json for JSON, anything else for YAML).",
    )
    p.add_argument(
        "--policy",
        default=None,
        help="Optional JSON/YAML file overriding simplification policy constants (thresholds, priority "
        "properties, retained error schemas).",
    )
    p.add_argument(
        "--max-properties",
        type=int,
        default=None,
        help="Maximum number of properties kept per component schema (default: 25).",
    )
    p.add_argument(
        "--max-nested-depth",
        type=int,
        default=None,
        help="Depth at which inline nested objects are flattened (default: 3).",
    )
    p.add_argument(
        "--keep-vendor-extensions",
        action="store_true",
        help="Keep 'x-*' vendor extension keys instead of stripping them.",
    )
    return p.parse_args(argv)


def _build_policy(args: argparse.Namespace) -> SimplifyPolicy:
    policy = SimplifyPolicy()
    if args.policy:
        policy = load_policy(Path(args.policy), base=policy)
    overrides: dict[str, Any] = {}
    if args.max_properties is not None:
        overrides["max_properties"] = args.max_properties
    if args.max_nested_depth is not None:
        overrides["max_nested_depth"] = args.max_nested_depth
    if args.keep_vendor_extensions:
        overrides["strip_vendor_extensions"] = False
    return policy_from_mapping(overrides, base=policy) if overrides else policy


def main(argv: list[str]) -> int:
    args = _parse_args(argv)

    for raw in (args.endpoints, args.openapi):
        if not Path(raw).exists():
            eprint(f"error: input file does not exist: {raw}")
            return 2

    try:
        policy = _build_policy(args)
        create_and_save_simplified_openapi(
            Path(args.endpoints),
            Path(args.openapi),
            Path(args.output),
            policy=policy,
        )
    except Exception as e:
        eprint(f"error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
