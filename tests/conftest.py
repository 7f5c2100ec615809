from __future__ import annotations

from typing import Any, Callable

import pytest


def _collect_refs(node: Any, refs: list[str] | None = None) -> list[str]:
    if refs is None:
        refs = []
    if isinstance(node, list):
        for item in node:
            _collect_refs(item, refs)
    elif isinstance(node, dict):
        if isinstance(node.get("$ref"), str):
            refs.append(node["$ref"])
        for value in node.values():
            _collect_refs(value, refs)
    return refs


@pytest.fixture
def collect_refs() -> Callable[[Any], list[str]]:
    """Every $ref string found anywhere under a node, in document order."""
    return _collect_refs


@pytest.fixture
def pointer_spec() -> dict[str, Any]:
    """A document mixing canonical, nested-component and root-level pointers."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Test API", "version": "1.0.0"},
        "paths": {
            "/test": {
                "get": {
                    "summary": "Test operation",
                    "responses": {
                        "200": {
                            "description": "OK",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {
                                            "main": {"$ref": "#/components/schemas/TestResponse"},
                                            "nestedData": {
                                                "$ref": "#/components/schemas/TestResponse/properties/nested"
                                            },
                                            "sharedInline": {"$ref": "#/properties/sharedThing"},
                                        },
                                    }
                                }
                            },
                        }
                    },
                }
            }
        },
        "components": {
            "schemas": {
                "TestResponse": {
                    "type": "object",
                    "properties": {
                        "shared": {"$ref": "#/properties/sharedThing"},
                        "nested": {
                            "type": "object",
                            "description": "Nested data description",
                            "properties": {"id": {"type": "string"}},
                        },
                    },
                }
            }
        },
        "properties": {
            "sharedThing": {
                "type": "array",
                "description": "Shared pointer schema",
                "items": {"type": "string"},
            }
        },
    }


@pytest.fixture
def parameter_spec() -> dict[str, Any]:
    """Parameters at every level pointing into the properties of Foo."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Test API", "version": "1.0.0"},
        "paths": {
            "/test": {
                "parameters": [
                    {
                        "name": "pathParam",
                        "in": "query",
                        "required": False,
                        "schema": {"$ref": "#/components/schemas/Foo/properties/bar"},
                    }
                ],
                "get": {
                    "summary": "Test operation",
                    "parameters": [
                        {
                            "name": "queryParam",
                            "in": "query",
                            "schema": {"$ref": "#/components/schemas/Foo/properties/baz"},
                        },
                        {
                            "name": "jsonParam",
                            "in": "header",
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Foo/properties/bar"}
                                }
                            },
                        },
                        {"$ref": "#/components/parameters/FooBarParam"},
                        {"$ref": "#/components/parameters/FooBazContentParam"},
                    ],
                    "responses": {"200": {"description": "OK"}},
                },
            }
        },
        "components": {
            "schemas": {
                "Foo": {
                    "type": "object",
                    "properties": {
                        "bar": {"type": "string", "description": "Bar value"},
                        "baz": {"type": "integer", "format": "int32"},
                    },
                }
            },
            "parameters": {
                "FooBarParam": {
                    "name": "headerParam",
                    "in": "header",
                    "schema": {"$ref": "#/components/schemas/Foo/properties/bar"},
                },
                "FooBazContentParam": {
                    "name": "jsonHeaderParam",
                    "in": "header",
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/Foo/properties/baz"}}
                    },
                },
            },
        },
    }
