"""Tests for OpenAPI/Swagger document parsing."""

from __future__ import annotations

import json
import logging

import pytest
import yaml

from apitree.errors import ParseError
from apitree.models import APIMethod, BodyType, ParamType
from apitree.openapi import OpenApiParser, load_document


@pytest.fixture
def parser() -> OpenApiParser:
    return OpenApiParser()


def _ops(document):
    return {(op.method.value, op.path): op for op in document.operations}


class TestLoadDocument:
    def test_json_and_yaml_are_equivalent(self, petstore_yaml):
        as_json = json.dumps(yaml.safe_load(petstore_yaml))
        assert load_document(as_json) == load_document(petstore_yaml)

    @pytest.mark.parametrize(
        "content",
        ["", "   ", "- just\n- a list\n", "openapi: [unclosed", '{"info": {}}'],
    )
    def test_rejects_bad_documents(self, content):
        with pytest.raises(ParseError):
            load_document(content)

    def test_paths_must_be_mapping(self):
        with pytest.raises(ParseError):
            load_document("openapi: 3.0.0\npaths: [1, 2]\n")

    def test_size_limit(self):
        content = "openapi: 3.0.0\npaths: {}\ninfo:\n  description: " + "x" * 200
        with pytest.raises(ParseError) as exc:
            load_document(content, max_bytes=100)
        assert exc.value.details["limit"] == 100


class TestOperations:
    def test_petstore(self, parser, petstore_yaml):
        document = parser.parse(petstore_yaml)

        assert document.info.title == "Petstore"
        assert document.info.version == "1.2.0"
        assert [s.url for s in document.servers] == ["https://api.example.com/v1"]
        assert set(_ops(document)) == {
            ("GET", "/pets"),
            ("POST", "/pets"),
            ("GET", "/pets/{petId}"),
            ("GET", "/health"),
        }

    def test_name_falls_back_from_summary(self, parser, petstore_yaml):
        ops = _ops(parser.parse(petstore_yaml))

        assert ops[("GET", "/pets")].name == "List pets"
        assert ops[("POST", "/pets")].name == "createPet"
        assert ops[("GET", "/health")].name == "GET /health"

    def test_tags_and_group_path(self, parser, petstore_yaml):
        ops = _ops(parser.parse(petstore_yaml))

        assert ops[("GET", "/pets")].group_path == ["pets"]
        assert ops[("GET", "/pets/{petId}")].group_path == ["pets", "details"]
        assert ops[("GET", "/health")].tags == []

    def test_query_and_path_params(self, parser, petstore_yaml):
        ops = _ops(parser.parse(petstore_yaml))

        limit = ops[("GET", "/pets")].request.query_params[0]
        assert (limit.name, limit.type, limit.default) == ("limit", ParamType.INTEGER, 20)
        pet_id = ops[("GET", "/pets/{petId}")].request.path_params[0]
        assert pet_id.name == "petId"
        assert pet_id.required

    def test_request_body_resolves_ref(self, parser, petstore_yaml):
        body = _ops(parser.parse(petstore_yaml))[("POST", "/pets")].request.body

        assert body.type == BodyType.JSON
        assert body.json_schema["required"] == ["id", "name"]
        assert body.json_schema["properties"]["name"] == {"type": "string"}

    def test_default_response_maps_to_zero(self, parser, petstore_yaml):
        responses = _ops(parser.parse(petstore_yaml))[("GET", "/pets")].responses

        assert [r.http_status for r in responses] == [200, 0]
        assert responses[0].body["type"] == "array"
        assert responses[1].name == "Unexpected error"

    def test_parsing_is_deterministic(self, parser, petstore_yaml):
        assert parser.parse(petstore_yaml) == parser.parse(petstore_yaml)

    def test_operation_params_override_path_params(self, parser):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/items/{id}": {
                    "parameters": [
                        {"name": "id", "in": "path", "schema": {"type": "string"}}
                    ],
                    "put": {
                        "parameters": [
                            {
                                "name": "id",
                                "in": "path",
                                "required": True,
                                "schema": {"type": "integer"},
                            },
                            {"name": "id", "in": "query"},
                        ],
                        "responses": {},
                    },
                }
            },
        }

        op = parser.parse(json.dumps(doc)).operations[0]

        assert op.method == APIMethod.PUT
        assert [(p.name, p.type) for p in op.request.path_params] == [
            ("id", ParamType.INTEGER)
        ]
        assert [p.name for p in op.request.query_params] == ["id"]

    def test_ignores_unknown_keys_under_path(self, parser):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/x": {"summary": "shared", "trace": {}, "get": {"responses": {}}}
            },
        }
        assert [op.method for op in parser.parse(json.dumps(doc)).operations] == [
            APIMethod.GET
        ]

    def test_long_names_are_truncated(self, parser):
        doc = {
            "openapi": "3.0.0",
            "paths": {"/x": {"get": {"summary": "n" * 300, "responses": {}}}},
        }
        assert len(parser.parse(json.dumps(doc)).operations[0].name) == 128

    def test_duplicate_operation_id_warns(self, parser, caplog):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/a": {"get": {"operationId": "same", "responses": {}}},
                "/b": {"get": {"operationId": "same", "responses": {}}},
            },
        }
        with caplog.at_level(logging.WARNING, logger="apitree.openapi.parser"):
            document = parser.parse(json.dumps(doc))

        assert len(document.operations) == 2
        assert "Duplicate operationId 'same'" in caplog.text


class TestSchemas:
    def test_circular_reference_is_marked(self, parser):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/nodes": {
                    "post": {
                        "requestBody": {
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Node"}
                                }
                            }
                        },
                        "responses": {},
                    }
                }
            },
            "components": {
                "schemas": {
                    "Node": {
                        "type": "object",
                        "properties": {
                            "child": {"$ref": "#/components/schemas/Node"}
                        },
                    }
                }
            },
        }

        schema = parser.parse(json.dumps(doc)).operations[0].request.body.json_schema
        child = schema["properties"]["child"]
        # The body schema was resolved before conversion; the first nested
        # reference expands once and the second is marked
        assert child["properties"]["child"] == {
            "$ref": "#/components/schemas/Node",
            "x-circular": True,
        }

    def test_deep_schema_is_truncated(self, parser):
        schema: dict = {"type": "string"}
        for _ in range(15):
            schema = {"type": "object", "properties": {"next": schema}}
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/deep": {
                    "post": {
                        "requestBody": {
                            "content": {"application/json": {"schema": schema}}
                        },
                        "responses": {},
                    }
                }
            },
        }

        node = parser.parse(json.dumps(doc)).operations[0].request.body.json_schema
        depth = 0
        while "properties" in node:
            node = node["properties"]["next"]
            depth += 1
        assert depth == 10
        assert node["x-truncated"] is True

    def test_unresolvable_ref_warns(self, parser, caplog):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/x": {
                    "get": {
                        "parameters": [{"$ref": "#/components/parameters/Missing"}],
                        "responses": {},
                    }
                }
            },
        }
        with caplog.at_level(logging.WARNING):
            op = parser.parse(json.dumps(doc)).operations[0]

        assert op.request.query_params == []
        assert "Unresolvable reference" in caplog.text

    def test_ref_chain_limit(self, parser, caplog):
        params = {f"P{i}": {"$ref": f"#/components/parameters/P{i + 1}"} for i in range(25)}
        params["P25"] = {"name": "q", "in": "query"}
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/x": {
                    "get": {
                        "parameters": [{"$ref": "#/components/parameters/P0"}],
                        "responses": {},
                    }
                }
            },
            "components": {"parameters": params},
        }
        with caplog.at_level(logging.WARNING):
            op = parser.parse(json.dumps(doc)).operations[0]

        assert op.request.query_params == []
        assert "exceeds 20 hops" in caplog.text


class TestSwagger2:
    DOC = {
        "swagger": "2.0",
        "info": {"title": "Legacy", "version": "0.9"},
        "host": "legacy.example.com",
        "basePath": "/api",
        "schemes": ["http"],
        "paths": {
            "/upload": {
                "post": {
                    "tags": ["files"],
                    "consumes": ["multipart/form-data"],
                    "parameters": [
                        {"name": "file", "in": "formData", "type": "file", "required": True},
                        {"name": "note", "in": "formData", "type": "string"},
                    ],
                    "responses": {"200": {"description": "Stored"}},
                }
            },
            "/things": {
                "post": {
                    "parameters": [
                        {
                            "name": "body",
                            "in": "body",
                            "schema": {"$ref": "#/definitions/Thing"},
                        }
                    ],
                    "responses": {
                        "201": {
                            "description": "Created",
                            "schema": {"$ref": "#/definitions/Thing"},
                        }
                    },
                }
            },
        },
        "definitions": {
            "Thing": {"type": "object", "properties": {"id": {"type": "integer"}}}
        },
    }

    def test_servers_from_host(self, parser):
        document = parser.parse(json.dumps(self.DOC))
        assert [s.url for s in document.servers] == ["http://legacy.example.com/api"]

    def test_form_data_params(self, parser):
        ops = _ops(parser.parse(json.dumps(self.DOC)))
        body = ops[("POST", "/upload")].request.body

        assert body.type == BodyType.FORM_DATA
        assert [(f.name, f.type, f.required) for f in body.form_fields] == [
            ("file", ParamType.FILE, True),
            ("note", ParamType.STRING, False),
        ]

    def test_body_param_and_response_schema(self, parser):
        op = _ops(parser.parse(json.dumps(self.DOC)))[("POST", "/things")]

        assert op.request.body.type == BodyType.JSON
        assert op.request.body.json_schema["properties"]["id"] == {"type": "integer"}
        assert op.responses[0].http_status == 201
        assert op.responses[0].body["properties"]["id"] == {"type": "integer"}
