"""Parse OpenAPI 3.x / Swagger 2.0 documents into normalized operations."""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

from ..config.models import DEFAULT_MAX_CONTENT_BYTES
from ..errors import ParseError
from ..models.api import ApiParam, ApiResponse, RequestBody, RequestShape
from ..models.base import APIMethod, BodyType, ParamType
from ..models.imports import OpenApiInfo, ParsedDocument, ParsedOperation, ServerInfo
from ..models.requests import MAX_API_NAME_LENGTH

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options")

MAX_REF_HOPS = 20
MAX_SCHEMA_DEPTH = 10

# Schema keywords copied verbatim into the normalized JSON schema
_SCHEMA_SCALAR_KEYS = (
    "description",
    "default",
    "enum",
    "format",
    "minimum",
    "maximum",
    "minLength",
    "maxLength",
    "pattern",
    "nullable",
)

_PARAM_TYPES = {
    "integer": ParamType.INTEGER,
    "number": ParamType.NUMBER,
    "boolean": ParamType.BOOLEAN,
    "array": ParamType.ARRAY,
    "object": ParamType.OBJECT,
    "file": ParamType.FILE,
}


def load_document(content: str, max_bytes: int = DEFAULT_MAX_CONTENT_BYTES) -> dict:
    """Decode JSON or YAML text into an OpenAPI mapping.

    Raises:
        ParseError: Empty, oversized, undecodable or not an OpenAPI document.
    """
    if not content or not content.strip():
        raise ParseError("OpenAPI content is empty")
    size = len(content.encode("utf-8"))
    if size > max_bytes:
        raise ParseError(
            f"OpenAPI content is {size} bytes; the limit is {max_bytes}",
            {"size": size, "limit": max_bytes},
        )

    text = content.strip()
    try:
        if text.startswith("{"):
            doc = json.loads(text)
        else:
            doc = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f"Document is neither valid JSON nor YAML: {e}") from e

    if not isinstance(doc, dict):
        raise ParseError("OpenAPI document must be a mapping")
    if "openapi" not in doc and "swagger" not in doc:
        raise ParseError("Missing 'openapi' or 'swagger' version field")
    if not isinstance(doc.get("paths") or {}, dict):
        raise ParseError("'paths' must be a mapping")
    return doc


class OpenApiParser:
    """Normalizes a document into ``ParsedOperation`` values.

    Only local ``#/...`` references are resolved. Param and response ids are
    not generated so that parsing the same document twice yields equal
    operations.
    """

    def __init__(self, max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES):
        self.max_content_bytes = max_content_bytes

    def parse(self, content: str) -> ParsedDocument:
        doc = load_document(content, self.max_content_bytes)
        operations = self._extract_operations(doc)
        logger.info(f"Parsed {len(operations)} operation(s) from OpenAPI document")
        return ParsedDocument(
            info=self._info(doc),
            servers=self._servers(doc),
            operations=operations,
        )

    # ========== Document level ==========

    def _info(self, doc: dict) -> OpenApiInfo:
        info = doc.get("info") or {}
        if not isinstance(info, dict):
            return OpenApiInfo()
        return OpenApiInfo(
            title=str(info.get("title") or "Untitled API"),
            version=str(info.get("version") or "1.0.0"),
            description=info.get("description"),
        )

    def _servers(self, doc: dict) -> list[ServerInfo]:
        servers = []
        for server in doc.get("servers") or []:
            if isinstance(server, dict) and server.get("url"):
                servers.append(
                    ServerInfo(url=str(server["url"]), description=server.get("description"))
                )
        # Swagger 2.0 spreads the base URL over host/basePath/schemes
        if not servers and doc.get("host"):
            base_path = doc.get("basePath") or ""
            for scheme in doc.get("schemes") or ["https"]:
                servers.append(ServerInfo(url=f"{scheme}://{doc['host']}{base_path}"))
        return servers

    def _extract_operations(self, doc: dict) -> list[ParsedOperation]:
        operations: list[ParsedOperation] = []
        seen_operation_ids: dict[str, str] = {}

        for raw_path, path_item in (doc.get("paths") or {}).items():
            path = str(raw_path)
            path_item = self._resolve(path_item, doc)
            if not isinstance(path_item, dict):
                continue
            shared_params = path_item.get("parameters") or []

            for method, operation in path_item.items():
                if (
                    not isinstance(method, str)
                    or method.lower() not in HTTP_METHODS
                    or not isinstance(operation, dict)
                ):
                    continue
                api_method = APIMethod.from_str(method)
                route = f"{api_method.value} {path}"

                operation_id = _clean(operation.get("operationId"))
                if operation_id:
                    if operation_id in seen_operation_ids:
                        logger.warning(
                            f"Duplicate operationId {operation_id!r} on {route} "
                            f"(first seen on {seen_operation_ids[operation_id]})"
                        )
                    else:
                        seen_operation_ids[operation_id] = route

                name = (
                    _clean(operation.get("summary"))
                    or operation_id
                    or route
                )
                params = self._merge_parameters(
                    shared_params, operation.get("parameters") or [], doc
                )
                operations.append(
                    ParsedOperation(
                        path=path,
                        method=api_method,
                        name=name[:MAX_API_NAME_LENGTH],
                        operation_id=operation_id,
                        description=operation.get("description"),
                        tags=_clean_tags(operation.get("tags")),
                        request=self._request_shape(operation, params, doc),
                        responses=self._responses(operation.get("responses") or {}, doc),
                    )
                )
        return operations

    # ========== References ==========

    def _resolve(self, obj: Any, doc: dict) -> Any:
        """Follow a ``$ref`` chain to the referenced object."""
        hops = 0
        while isinstance(obj, dict) and "$ref" in obj:
            ref = obj["$ref"]
            if hops >= MAX_REF_HOPS:
                logger.warning(f"Reference chain through {ref} exceeds {MAX_REF_HOPS} hops")
                return {}
            target = self._lookup(ref, doc)
            if target is None:
                logger.warning(f"Unresolvable reference {ref}")
                return {}
            obj = target
            hops += 1
        return obj

    def _lookup(self, ref: Any, doc: dict) -> Any:
        if not isinstance(ref, str) or not ref.startswith("#/"):
            return None
        node: Any = doc
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    # ========== Parameters ==========

    def _merge_parameters(
        self, shared: list, own: list, doc: dict
    ) -> list[dict]:
        """Path-level parameters overridden by operation-level ones on (in, name)."""
        merged: dict[tuple[str, str], dict] = {}
        for raw in list(shared) + list(own):
            param = self._resolve(raw, doc)
            if not isinstance(param, dict) or not param.get("name"):
                continue
            merged[(param.get("in", ""), param["name"])] = param
        return list(merged.values())

    def _param(self, param: dict, doc: dict) -> ApiParam:
        schema = self._resolve(param.get("schema") or {}, doc)
        if not schema and param.get("type"):
            # Swagger 2.0 keeps the type on the parameter itself
            schema = param
        return ApiParam(
            name=param["name"],
            type=_param_type(schema),
            required=bool(param.get("required", False)),
            description=param.get("description") or "",
            example=param.get("example"),
            default=schema.get("default") if isinstance(schema, dict) else None,
        )

    def _request_shape(
        self, operation: dict, params: list[dict], doc: dict
    ) -> RequestShape:
        by_location: dict[str, list[ApiParam]] = {"header": [], "path": [], "query": []}
        form_params: list[ApiParam] = []
        body_param: dict | None = None
        for param in params:
            location = param.get("in")
            if location in by_location:
                by_location[location].append(self._param(param, doc))
            elif location == "formData":
                form_params.append(self._param(param, doc))
            elif location == "body":
                body_param = param

        body = None
        if operation.get("requestBody") is not None:
            body = self._request_body(self._resolve(operation["requestBody"], doc), doc)
        elif body_param is not None:
            body = RequestBody(
                type=BodyType.JSON,
                json_schema=self._schema(body_param.get("schema") or {}, doc),
                description=body_param.get("description"),
            )
        elif form_params:
            consumes = operation.get("consumes") or doc.get("consumes") or []
            body_type = (
                BodyType.FORM_DATA
                if "multipart/form-data" in consumes
                or any(p.type == ParamType.FILE for p in form_params)
                else BodyType.URL_ENCODED
            )
            body = RequestBody(type=body_type, form_fields=form_params)

        return RequestShape(
            headers=by_location["header"],
            path_params=by_location["path"],
            query_params=by_location["query"],
            body=body,
        )

    def _request_body(self, request_body: Any, doc: dict) -> RequestBody:
        if not isinstance(request_body, dict):
            return RequestBody()
        content = request_body.get("content") or {}
        description = request_body.get("description")

        media_type = _pick_media_type(content)
        if media_type is None:
            return RequestBody(type=BodyType.NONE, description=description)

        body_type = _body_type(media_type)
        media = content.get(media_type) or {}
        schema = self._resolve(media.get("schema") or {}, doc)

        if body_type in (BodyType.FORM_DATA, BodyType.URL_ENCODED):
            return RequestBody(
                type=body_type,
                form_fields=self._form_fields(schema, doc),
                description=description,
            )
        if body_type in (BodyType.JSON, BodyType.XML):
            return RequestBody(
                type=body_type,
                json_schema=self._schema(schema, doc),
                description=description,
            )
        return RequestBody(type=body_type, description=description)

    def _form_fields(self, schema: Any, doc: dict) -> list[ApiParam]:
        if not isinstance(schema, dict):
            return []
        required = set(schema.get("required") or [])
        fields = []
        for name, prop in (schema.get("properties") or {}).items():
            prop = self._resolve(prop, doc)
            if not isinstance(prop, dict):
                prop = {}
            fields.append(
                ApiParam(
                    name=name,
                    type=_param_type(prop),
                    required=name in required,
                    description=prop.get("description") or "",
                    example=prop.get("example"),
                    default=prop.get("default"),
                )
            )
        return fields

    # ========== Responses ==========

    def _responses(self, responses: Any, doc: dict) -> list[ApiResponse]:
        if not isinstance(responses, dict):
            return []
        result = []
        for status_code, response in responses.items():
            code = str(status_code)
            if code == "default":
                http_status = 0
            elif code.isdigit():
                http_status = int(code)
            else:
                logger.warning(f"Skipping response with unsupported status {code!r}")
                continue

            resolved = self._resolve(response, doc)
            if not isinstance(resolved, dict):
                continue

            body = None
            content = resolved.get("content") or {}
            media_type = _pick_media_type(content)
            if media_type and _body_type(media_type) == BodyType.JSON:
                schema = (content.get(media_type) or {}).get("schema")
                if schema:
                    body = self._schema(schema, doc)
            elif resolved.get("schema"):
                body = self._schema(resolved["schema"], doc)

            result.append(
                ApiResponse(
                    name=_clean(resolved.get("description")) or f"Response {code}",
                    http_status=http_status,
                    body=body,
                )
            )
        return result

    # ========== Schemas ==========

    def _schema(
        self, schema: Any, doc: dict, depth: int = 0, refs: tuple[str, ...] = ()
    ) -> dict[str, Any]:
        """Convert a schema to a plain JSON-schema subset.

        Recursion stops at MAX_SCHEMA_DEPTH and at references already on the
        current path, which are kept as ``{"$ref": ..., "x-circular": true}``.
        """
        if not isinstance(schema, dict):
            return {}
        ref = schema.get("$ref")
        if isinstance(ref, str):
            if ref in refs:
                return {"$ref": ref, "x-circular": True}
            refs = refs + (ref,)
            schema = self._resolve(schema, doc)
            if not isinstance(schema, dict):
                return {}
        if depth >= MAX_SCHEMA_DEPTH:
            return {"type": schema.get("type", "object"), "x-truncated": True}

        result: dict[str, Any] = {"type": schema.get("type", "object")}
        for key in _SCHEMA_SCALAR_KEYS:
            if key in schema:
                result[key] = schema[key]
        if "example" in schema:
            result["examples"] = [schema["example"]]

        properties = schema.get("properties")
        if isinstance(properties, dict):
            result["properties"] = {
                key: self._schema(value, doc, depth + 1, refs)
                for key, value in properties.items()
            }
            if schema.get("required"):
                result["required"] = list(schema["required"])
        if "items" in schema:
            result["items"] = self._schema(schema["items"], doc, depth + 1, refs)
        if isinstance(schema.get("additionalProperties"), dict):
            result["additionalProperties"] = self._schema(
                schema["additionalProperties"], doc, depth + 1, refs
            )
        for combinator in ("allOf", "oneOf", "anyOf"):
            if isinstance(schema.get(combinator), list):
                result[combinator] = [
                    self._schema(sub, doc, depth + 1, refs) for sub in schema[combinator]
                ]
        return result


def _clean(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _clean_tags(tags: Any) -> list[str]:
    if not isinstance(tags, list):
        return []
    return [tag.strip() for tag in tags if isinstance(tag, str) and tag.strip()]


def _param_type(schema: Any) -> ParamType:
    if not isinstance(schema, dict):
        return ParamType.STRING
    schema_type = schema.get("type")
    if schema_type in _PARAM_TYPES:
        return _PARAM_TYPES[schema_type]
    if schema.get("format") == "binary":
        return ParamType.FILE
    return ParamType.STRING


def _pick_media_type(content: dict) -> str | None:
    """Prefer JSON, then forms, then whatever comes first."""
    if not isinstance(content, dict) or not content:
        return None
    for preferred in (
        "application/json",
        "multipart/form-data",
        "application/x-www-form-urlencoded",
    ):
        if preferred in content:
            return preferred
    for media_type in content:
        if media_type.endswith("+json"):
            return media_type
    return next(iter(content))


def _body_type(media_type: str) -> BodyType:
    media_type = media_type.lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return BodyType.JSON
    if media_type == "multipart/form-data":
        return BodyType.FORM_DATA
    if media_type == "application/x-www-form-urlencoded":
        return BodyType.URL_ENCODED
    if media_type.endswith("/xml") or media_type.endswith("+xml"):
        return BodyType.XML
    if media_type.startswith("text/"):
        return BodyType.TEXT
    if media_type == "application/octet-stream" or media_type.startswith(
        ("image/", "audio/", "video/")
    ):
        return BodyType.BINARY
    return BodyType.NONE
