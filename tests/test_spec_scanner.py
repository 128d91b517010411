import json

import pytest

from scanners import HttpMethod, InputKind, MalformedInput, ParamLocation, SpecScanner
from tests.conftest import fragment


PETSTORE = {
    "openapi": "3.0.0",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List all pets",
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer", "format": "int32"}},
                ],
            },
            "post": {
                "operationId": "createPet",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                },
            },
        },
        "/pets/{petId}": {
            "parameters": [{"$ref": "#/components/parameters/PetId"}],
            "get": {"operationId": "showPetById", "tags": ["pets"]},
        },
    },
    "components": {
        "parameters": {
            "PetId": {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
        },
        "schemas": {"Pet": {"type": "object"}},
    },
}

SWAGGER_YAML = """
swagger: "2.0"
info:
  title: Legacy
  version: "1"
paths:
  /users/{id}:
    delete:
      operationId: deleteUser
      parameters:
        - name: id
          in: path
          type: integer
"""


def doc(text, name):
    return fragment(text, name, kind=InputKind.API_DOCUMENT)


def test_openapi_json_one_candidate_per_operation():
    found = SpecScanner().extract(doc(json.dumps(PETSTORE, indent=2), "petstore.json"))
    ops = sorted((c.method.value, c.path_template, c.handler_name) for c in found)
    assert ops == [
        ("GET", "/pets", "listPets"),
        ("GET", "/pets/{petId}", "showPetById"),
        ("POST", "/pets", "createPet"),
    ]
    assert {c.framework for c in found} == {"OpenAPI"}


def test_documented_parameters_are_copied():
    found = SpecScanner().extract(doc(json.dumps(PETSTORE), "petstore.json"))
    by_handler = {c.handler_name: c for c in found}

    limit = by_handler["listPets"].parameters[0]
    assert (limit.name, limit.location, limit.type_hint, limit.required) == (
        "limit", ParamLocation.QUERY, "integer:int32", False,
    )

    body = by_handler["createPet"].parameters[0]
    assert (body.name, body.location, body.type_hint, body.required) == (
        "body", ParamLocation.BODY, "Pet", True,
    )

    pet_id = by_handler["showPetById"].parameters[0]
    assert (pet_id.name, pet_id.location, pet_id.type_hint) == ("petId", ParamLocation.PATH, "string")


def test_context_carries_summary_and_tags():
    found = SpecScanner().extract(doc(json.dumps(PETSTORE), "petstore.json"))
    by_handler = {c.handler_name: c for c in found}
    assert by_handler["listPets"].context == ["GET /pets", "List all pets"]
    assert "tags: pets" in by_handler["showPetById"].context


def test_swagger_yaml():
    found = SpecScanner().extract(doc(SWAGGER_YAML, "legacy.yaml"))
    assert len(found) == 1
    assert found[0].method == HttpMethod.DELETE
    assert found[0].framework == "Swagger"
    assert found[0].parameters[0].type_hint == "integer"
    assert found[0].parameters[0].required


def test_line_number_points_at_method_key():
    found = SpecScanner().extract(doc(SWAGGER_YAML, "legacy.yaml"))
    lines = SWAGGER_YAML.split("\n")
    assert lines[found[0].location.line - 1].strip() == "delete:"


@pytest.mark.parametrize("text,name", [
    ("{not json", "broken.json"),
    ("- just\n- a list\n", "list.yaml"),
    ('{"openapi": "3.0.0"}', "nopaths.json"),
])
def test_malformed_documents_raise(text, name):
    with pytest.raises(MalformedInput) as exc:
        SpecScanner().extract(doc(text, name))
    assert exc.value.location is not None
