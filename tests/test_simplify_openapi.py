from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
import yaml

from filter_endpoints import Endpoint
from normalize_refs import normalize_schema_refs
from simplify_openapi import create_and_save_simplified_openapi, load_policy, main, simplify_document
from simplify_policy import SimplifyPolicy


def _write_inputs(tmp_path: Path, endpoints: list, spec: dict) -> tuple[Path, Path, Path]:
    endpoints_file = tmp_path / "endpoints.json"
    openapi_file = tmp_path / "openapi.yaml"
    endpoints_file.write_text(json.dumps(endpoints, indent=2), encoding="utf-8")
    openapi_file.write_text(yaml.dump(spec), encoding="utf-8")
    return endpoints_file, openapi_file, tmp_path / "openapi-trimmed.yaml"


def _assert_refs_canonical_and_resolvable(doc: dict, refs: list[str]) -> None:
    for ref in refs:
        assert not ref.startswith("#/properties/"), ref
        assert not re.match(r"^#/components/schemas/[^/]+/", ref), ref
        _, group, name = ref[2:].split("/")
        assert name in doc["components"][group], ref


def test_hoists_property_pointer_refs_into_reusable_components(tmp_path, pointer_spec, collect_refs):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [{"pathPattern": "/test", "method": "get", "toolName": "getTest"}],
        pointer_spec,
    )

    create_and_save_simplified_openapi(endpoints_file, openapi_file, trimmed_file)

    trimmed = yaml.safe_load(trimmed_file.read_text(encoding="utf-8"))
    schemas = trimmed["components"]["schemas"]
    assert {"TestResponse", "TestResponseSharedThing", "GetTestTestResponseNested"} <= set(schemas)
    assert schemas["GetTestTestResponseNested"]["description"] == "Nested data description"
    assert schemas["TestResponseSharedThing"]["items"] == {"type": "string"}
    assert trimmed["paths"]["/test"]["get"]["operationId"] == "getTest"
    assert trimmed["paths"]["/test"]["get"]["description"] == "Test operation"
    _assert_refs_canonical_and_resolvable(trimmed, collect_refs(trimmed))
    assert "&id" not in trimmed_file.read_text(encoding="utf-8")


def test_normalizes_parameter_schemas_referencing_nested_properties(tmp_path, parameter_spec, collect_refs):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [{"pathPattern": "/test", "method": "get", "toolName": "getTestParameters"}],
        parameter_spec,
    )

    create_and_save_simplified_openapi(endpoints_file, openapi_file, trimmed_file)

    trimmed = yaml.safe_load(trimmed_file.read_text(encoding="utf-8"))
    schemas = trimmed["components"]["schemas"]

    def target(ref: str) -> dict:
        assert ref.startswith("#/components/schemas/")
        return schemas[ref[len("#/components/schemas/"):]]

    component_params = trimmed["components"]["parameters"]
    bar_ref = component_params["FooBarParam"]["schema"]["$ref"]
    baz_ref = component_params["FooBazContentParam"]["content"]["application/json"]["schema"]["$ref"]
    assert target(bar_ref) == {"type": "string", "description": "Bar value"}
    assert target(baz_ref) == {"type": "integer", "format": "int32"}

    params = {p["name"]: p for p in trimmed["paths"]["/test"]["get"]["parameters"]}
    assert set(params) == {"queryParam", "jsonParam", "headerParam", "jsonHeaderParam"}
    assert params["queryParam"]["schema"]["$ref"] == baz_ref
    assert params["jsonParam"]["content"]["application/json"]["schema"]["$ref"] == bar_ref
    assert params["headerParam"]["schema"]["$ref"] == bar_ref
    assert trimmed["paths"]["/test"]["parameters"][0]["schema"]["$ref"] == bar_ref

    # One component per distinct pointer; Foo itself is no longer referenced once both are hoisted.
    assert len(schemas) == 2
    assert "Foo" not in schemas
    _assert_refs_canonical_and_resolvable(trimmed, collect_refs(trimmed))


def test_unknown_path_pattern_aborts_without_output(tmp_path, pointer_spec):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [{"pathPattern": "/missing", "method": "get", "toolName": "getMissing"}],
        pointer_spec,
    )

    with pytest.raises(RuntimeError, match='Path "/missing" not found'):
        create_and_save_simplified_openapi(endpoints_file, openapi_file, trimmed_file)
    assert not trimmed_file.exists()


def test_disabled_endpoint_with_unknown_path_is_ignored(tmp_path, pointer_spec):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [
            {"pathPattern": "/test", "method": "get", "toolName": "getTest"},
            {"pathPattern": "/missing", "method": "get", "toolName": "getMissing", "disabled": True},
        ],
        pointer_spec,
    )

    create_and_save_simplified_openapi(endpoints_file, openapi_file, trimmed_file)
    assert trimmed_file.exists()


def test_oversized_schema_is_reduced():
    doc = {
        "paths": {
            "/big": {
                "get": {
                    "responses": {
                        "200": {"content": {"application/json": {"schema": {"$ref": "#/components/schemas/Big"}}}}
                    }
                }
            }
        },
        "components": {
            "schemas": {"Big": {"type": "object", "properties": {f"p{i}": {"type": "string"} for i in range(30)}}}
        },
    }

    simplify_document(doc, [Endpoint(path_pattern="/big", method="get", tool_name="getBig")])

    big = doc["components"]["schemas"]["Big"]
    assert len(big["properties"]) == 25
    assert big["additionalProperties"] is True
    assert "30 properties to 25" in big["description"]


def test_multi_branch_union_is_collapsed():
    doc = {
        "paths": {
            "/value": {
                "get": {
                    "responses": {
                        "200": {"content": {"application/json": {"schema": {"$ref": "#/components/schemas/Value"}}}}
                    }
                }
            }
        },
        "components": {
            "schemas": {"Value": {"anyOf": [{"type": "number"}, {"type": "string"}, {"type": "boolean"}]}}
        },
    }

    simplify_document(doc, [Endpoint(path_pattern="/value", method="get", tool_name="getValue")])

    value = doc["components"]["schemas"]["Value"]
    assert "anyOf" not in value
    assert value["type"] == "number"
    assert value["nullable"] is True
    assert "Simplified from 3 options" in value["description"]


def test_pipeline_output_is_minimal_and_stable(pointer_spec, collect_refs):
    pointer_spec["components"]["schemas"]["Unreferenced"] = {"type": "object"}
    pointer_spec["components"]["schemas"]["TestResponse"]["x-ms-internal"] = True

    doc = simplify_document(pointer_spec, [Endpoint(path_pattern="/test", method="get", tool_name="getTest")])

    assert "Unreferenced" not in doc["components"]["schemas"]
    assert "x-ms-internal" not in doc["components"]["schemas"]["TestResponse"]
    _assert_refs_canonical_and_resolvable(doc, collect_refs(doc))
    assert normalize_schema_refs(doc) == 0


def test_unresolvable_sub_path_ref_does_not_survive_pruning(collect_refs, capsys):
    doc = {
        "paths": {
            "/a": {
                "get": {
                    "responses": {
                        "200": {
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {
                                            "broken": {"$ref": "#/components/schemas/Foo/properties/missing"}
                                        },
                                    }
                                }
                            }
                        }
                    }
                }
            }
        },
        "components": {"schemas": {"Foo": {"type": "object", "properties": {"id": {"type": "string"}}}}},
    }

    doc = simplify_document(doc, [Endpoint(path_pattern="/a", method="get", tool_name="getA")])

    schema = doc["paths"]["/a"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]
    assert schema["properties"]["broken"] == {"type": "object"}
    assert doc["components"]["schemas"] == {}
    assert collect_refs(doc) == []
    assert "Cannot resolve" in capsys.readouterr().err


def test_json_output_follows_suffix(tmp_path, pointer_spec):
    endpoints_file, openapi_file, _ = _write_inputs(
        tmp_path,
        [{"pathPattern": "/test", "method": "GET", "toolName": "getTest"}],
        pointer_spec,
    )
    output = tmp_path / "out.json"

    create_and_save_simplified_openapi(endpoints_file, openapi_file, output)

    content = output.read_text(encoding="utf-8")
    assert content.endswith("\n")
    assert json.loads(content)["paths"]["/test"]["get"]["operationId"] == "getTest"


def test_load_policy_overrides_defaults(tmp_path):
    policy_file = tmp_path / "policy.yaml"
    policy_file.write_text("max_properties: 40\nerror_schemas: [AppError]\n", encoding="utf-8")

    policy = load_policy(policy_file)

    assert policy.max_properties == 40
    assert policy.error_schemas == ("AppError",)
    assert policy.max_nested_depth == SimplifyPolicy().max_nested_depth


@pytest.mark.parametrize(
    "content, message",
    [
        ("max_depth: 2\n", "Unknown policy keys: max_depth"),
        ("max_properties: 0\n", "positive integer"),
        ("priority_properties: id\n", "list of strings"),
        ("- 1\n", "must be a JSON/YAML object"),
    ],
)
def test_load_policy_rejects_invalid_values(tmp_path, content, message):
    policy_file = tmp_path / "policy.yaml"
    policy_file.write_text(content, encoding="utf-8")

    with pytest.raises(RuntimeError, match=message):
        load_policy(policy_file)


def test_main_writes_output(tmp_path, pointer_spec):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [{"pathPattern": "/test", "method": "get", "toolName": "getTest"}],
        pointer_spec,
    )

    code = main([str(endpoints_file), str(openapi_file), "-o", str(trimmed_file), "--max-properties", "10"])

    assert code == 0
    assert "TestResponse" in yaml.safe_load(trimmed_file.read_text(encoding="utf-8"))["components"]["schemas"]


def test_main_reports_configuration_errors(tmp_path, pointer_spec, capsys):
    endpoints_file, openapi_file, trimmed_file = _write_inputs(
        tmp_path,
        [{"pathPattern": "/missing", "method": "get", "toolName": "getMissing"}],
        pointer_spec,
    )

    code = main([str(endpoints_file), str(openapi_file), "-o", str(trimmed_file)])

    assert code == 1
    assert not trimmed_file.exists()
    assert 'error: Path "/missing" not found in OpenAPI spec.' in capsys.readouterr().err


def test_main_requires_existing_inputs(tmp_path, capsys):
    code = main([str(tmp_path / "nope.json"), str(tmp_path / "spec.yaml"), "-o", str(tmp_path / "out.yaml")])

    assert code == 2
    assert "input file does not exist" in capsys.readouterr().err
