"""Spec scanner: OpenAPI 3 / Swagger 2 documents (.json/.yaml)."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .base import (
    BaseScanner, Language, PatternDef, Parameter, ParamLocation,
    EndpointCandidate, RawFragment, HttpMethod, SourceLocation,
)
from .errors import MalformedInput

logger = logging.getLogger("restapisummarizer.scanners.spec")

HTTP_METHODS = ["get", "post", "put", "delete", "patch", "head", "options", "trace"]


class SpecScanner(BaseScanner):
    """
    Static Specification File Scanner:
    - OpenAPI 3.x (.json, .yaml, .yml)
    - Swagger 2.0 (.json, .yaml, .yml)

    Every documented path+method entry becomes exactly one candidate. Documented
    parameters are copied as they are written; nothing is inferred.
    """

    @property
    def language(self) -> Language:
        return Language.UNKNOWN

    @property
    def extensions(self) -> Set[str]:
        return {".json", ".yaml", ".yml"}

    @property
    def patterns(self) -> List[PatternDef]:
        # Patterns not used - we do deep parsing instead
        return []

    def extract(self, fragment: RawFragment) -> List[EndpointCandidate]:
        """Override to use spec-specific parsing."""
        content = fragment.text
        lines = content.split('\n')
        spec = self._load(fragment)

        paths = spec.get("paths")
        if not isinstance(paths, dict):
            raise MalformedInput(
                f"{fragment.location.file_path}: document has no 'paths' mapping",
                fragment.location,
            )

        base_dir = Path(fragment.location.file_path).parent
        spec = self._resolve_refs(spec, base_dir)
        paths = spec.get("paths") or {}

        results = []
        for route, path_obj in paths.items():
            if not isinstance(path_obj, dict):
                continue

            path_params = self._parameters(spec, path_obj.get("parameters"))

            for method in HTTP_METHODS:
                operation = path_obj.get(method)
                if not isinstance(operation, dict):
                    continue

                # Operation-level parameters override path-level ones by (name, in)
                merged: Dict[tuple, Parameter] = {(p.name, p.location): p for p in path_params}
                for param in self._parameters(spec, operation.get("parameters")):
                    merged[(param.name, param.location)] = param

                body = self._request_body(spec, operation.get("requestBody"))
                if body is not None and (body.name, body.location) not in merged:
                    merged[(body.name, body.location)] = body

                line_num = self._find_line_number(content, route, method)
                results.append(EndpointCandidate(
                    method=HttpMethod.parse(method),
                    path_template=str(route),
                    location=SourceLocation(fragment.location.file_path, line_num),
                    handler_name=operation.get("operationId"),
                    parameters=list(merged.values()),
                    framework="OpenAPI" if "openapi" in spec else "Swagger",
                    language=self.language,
                    context=self._operation_context(route, method, operation),
                ))

        self.stats["fragments_scanned"] += 1
        self.stats["candidates_found"] += len(results)
        logger.debug(f"{fragment.location.file_path}: {len(results)} documented operations")
        return results

    def _load(self, fragment: RawFragment) -> Dict[str, Any]:
        try:
            if fragment.suffix == ".json":
                spec = json.loads(fragment.text)
            else:
                spec = yaml.safe_load(fragment.text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise MalformedInput(
                f"{fragment.location.file_path}: cannot parse API document: {e}",
                fragment.location,
            ) from e

        if not isinstance(spec, dict):
            raise MalformedInput(
                f"{fragment.location.file_path}: API document is not a mapping",
                fragment.location,
            )
        return spec

    # =========================================================================
    # PARAMETERS
    # =========================================================================

    def _parameters(self, spec: Dict[str, Any], raw: Any) -> List[Parameter]:
        params = []
        for item in raw or []:
            item = self._deref(spec, item)
            if not isinstance(item, dict) or "name" not in item:
                continue
            location = ParamLocation.parse(item.get("in"))
            schema = self._deref(spec, item.get("schema")) if "schema" in item else item
            required = bool(item.get("required", False)) or location == ParamLocation.PATH
            params.append(Parameter(
                name=str(item["name"]),
                location=location,
                type_hint=self._schema_type(schema),
                required=required,
            ))
        return params

    def _request_body(self, spec: Dict[str, Any], raw: Any) -> Optional[Parameter]:
        body = self._deref(spec, raw)
        if not isinstance(body, dict):
            return None
        schema = None
        for media in (body.get("content") or {}).values():
            if isinstance(media, dict) and "schema" in media:
                schema = media["schema"]
                break
        return Parameter(
            name="body",
            location=ParamLocation.BODY,
            type_hint=self._schema_type(schema),
            required=bool(body.get("required", False)),
        )

    def _schema_type(self, schema: Any) -> Optional[str]:
        """``type`` or ``type:format``; a ``$ref`` names its component."""
        if not isinstance(schema, dict):
            return None
        ref = schema.get("$ref")
        if isinstance(ref, str):
            return ref.rsplit("/", 1)[-1]
        type_name = schema.get("type")
        if not type_name:
            return None
        fmt = schema.get("format")
        return f"{type_name}:{fmt}" if fmt else str(type_name)

    @staticmethod
    def _deref(spec: Dict[str, Any], item: Any) -> Any:
        """Resolve a local ``#/components/...`` or ``#/parameters/...`` reference."""
        seen = set()
        while isinstance(item, dict) and isinstance(item.get("$ref"), str) and item["$ref"].startswith("#/"):
            ref = item["$ref"]
            if ref in seen:
                break
            seen.add(ref)
            target: Any = spec
            for part in ref[2:].split("/"):
                part = part.replace("~1", "/").replace("~0", "~")
                if not isinstance(target, dict) or part not in target:
                    logger.debug(f"Unresolvable reference {ref}")
                    return item
                target = target[part]
            item = target
        return item

    def _resolve_refs(self, spec: object, base_dir: Path) -> object:
        """Recursively resolve local-file $ref values (not fragment or HTTP refs)."""
        if isinstance(spec, dict):
            if '$ref' in spec:
                ref = spec['$ref']
                if isinstance(ref, str) and not ref.startswith('#') and not ref.startswith('http'):
                    ref_path = ref.split('#')[0]
                    ref_file = base_dir / ref_path
                    if ref_file.exists() and ref_file.suffix.lower() in {'.json', '.yaml', '.yml'}:
                        try:
                            raw = ref_file.read_text(encoding='utf-8')
                            if ref_file.suffix.lower() == '.json':
                                return self._resolve_refs(json.loads(raw), ref_file.parent)
                            return self._resolve_refs(yaml.safe_load(raw), ref_file.parent)
                        except (OSError, ValueError, yaml.YAMLError) as e:
                            logger.warning(f"Could not resolve $ref {ref}: {e}")
            return {k: self._resolve_refs(v, base_dir) for k, v in spec.items()}
        elif isinstance(spec, list):
            return [self._resolve_refs(item, base_dir) for item in spec]
        return spec

    # =========================================================================
    # LOCATION / CONTEXT
    # =========================================================================

    def _find_line_number(self, content: str, route: str, method: str) -> int:
        """Find the line of the method key under a route."""
        match = re.search(re.escape(str(route)) + r'["\']?\s*:', content)
        if not match:
            return 1
        method_match = re.search(r'["\']?' + method + r'["\']?\s*:', content[match.end():])
        offset = match.end() + method_match.start() if method_match else match.start()
        return content[:offset].count('\n') + 1

    @staticmethod
    def _operation_context(route: str, method: str, operation: Dict[str, Any]) -> List[str]:
        """Documented summary and description stand in for source lines."""
        context = [f"{method.upper()} {route}"]
        for key in ("summary", "description"):
            value = operation.get(key)
            if isinstance(value, str) and value.strip():
                context.append(value.strip().split('\n')[0])
        if operation.get("tags"):
            context.append("tags: " + ", ".join(str(t) for t in operation["tags"]))
        return context
