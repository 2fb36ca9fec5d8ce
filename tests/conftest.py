"""Shared fixtures for apitree tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from apitree.config import ApiTreeConfig
from apitree.db import TreeStore, create_schema, get_connection
from apitree.models import APIMethod
from apitree.state import WorkspaceState

PROJECT = "proj-1"
OTHER_PROJECT = "proj-2"


PETSTORE_YAML = """
openapi: 3.0.3
info:
  title: Petstore
  version: 1.2.0
  description: Sample pets API
servers:
  - url: https://api.example.com/v1
paths:
  /pets:
    get:
      summary: List pets
      operationId: listPets
      tags: [pets]
      parameters:
        - name: limit
          in: query
          schema:
            type: integer
            default: 20
      responses:
        "200":
          description: A list of pets
          content:
            application/json:
              schema:
                type: array
                items:
                  $ref: "#/components/schemas/Pet"
        default:
          description: Unexpected error
    post:
      operationId: createPet
      tags: [pets]
      requestBody:
        content:
          application/json:
            schema:
              $ref: "#/components/schemas/Pet"
      responses:
        "201":
          description: Created
  /pets/{petId}:
    parameters:
      - name: petId
        in: path
        required: true
        schema:
          type: string
    get:
      summary: Show pet
      tags: [pets/details]
      responses:
        "200":
          description: One pet
  /health:
    get:
      responses:
        "200":
          description: OK
components:
  schemas:
    Pet:
      type: object
      required: [id, name]
      properties:
        id:
          type: integer
        name:
          type: string
"""


@pytest.fixture
def conn():
    """In-memory DuckDB connection with the schema created."""
    connection = get_connection(":memory:")
    create_schema(connection)
    yield connection
    connection.close()


@pytest.fixture
def store(conn) -> TreeStore:
    return TreeStore(conn)


@pytest.fixture
def workspace(tmp_path):
    """Workspace over an in-memory database with default settings."""
    state = WorkspaceState(tmp_path, config=ApiTreeConfig())
    yield state
    state.close()


@pytest.fixture
def petstore_yaml() -> str:
    return PETSTORE_YAML


@pytest.fixture
def tree(store):
    """A (root) -> B -> C chain plus a sibling root D and one API in B.

    Returns a dict of the created nodes keyed by letter.
    """
    a = store.create_group(PROJECT, "A")
    b = store.create_group(PROJECT, "B", parent_id=a.id)
    c = store.create_group(PROJECT, "C", parent_id=b.id)
    d = store.create_group(PROJECT, "D")
    x = store.create_api(PROJECT, b.id, "Ping", "/ping", APIMethod.GET)
    return {"A": a, "B": b, "C": c, "D": d, "X": x}


def insert_chain(conn, length: int, project_id: str = PROJECT) -> list[str]:
    """Insert groups g0 -> g1 -> ... directly, skipping the store's checks.

    Returns the ids root first.
    """
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    ids = [f"g{i}" for i in range(length)]
    conn.executemany(
        """
        INSERT INTO api_groups
            (id, project_id, parent_id, name, description, sort_order, created_at, updated_at)
        VALUES (?, ?, ?, ?, NULL, 0, ?, ?)
        """,
        [
            [group_id, project_id, ids[i - 1] if i else None, group_id, now, now]
            for i, group_id in enumerate(ids)
        ],
    )
    return ids
