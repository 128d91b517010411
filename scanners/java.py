"""Java scanner: Spring MVC, JAX-RS, Vert.x."""
from __future__ import annotations

import re
from typing import List, Optional, Set, Tuple

from .base import (
    BaseScanner, Language, PatternDef, Parameter, ParamLocation,
    EndpointCandidate, RawFragment, HttpMethod,
)

# Balanced single-level parentheses inside an annotation argument list
_ARGS = r'(?:[^()]|\([^()]*\))*'


class JavaScanner(BaseScanner):
    """Java scanner for Spring Boot and other frameworks."""

    JAVA_TYPES = {
        'int': 'integer', 'integer': 'integer', 'short': 'integer',
        'long': 'integer:int64', 'biginteger': 'integer',
        'double': 'number', 'float': 'number', 'bigdecimal': 'number',
        'boolean': 'boolean',
        'string': 'string', 'char': 'string', 'character': 'string',
        'uuid': 'string:uuid',
        'localdate': 'string:date', 'localdatetime': 'string:date-time',
        'instant': 'string:date-time', 'offsetdatetime': 'string:date-time',
        'multipartfile': 'string:binary',
    }

    # Parameter annotations -> location
    PARAM_ANNOTATIONS = {
        'PathVariable': ParamLocation.PATH,
        'PathParam': ParamLocation.PATH,
        'RequestParam': ParamLocation.QUERY,
        'QueryParam': ParamLocation.QUERY,
        'RequestBody': ParamLocation.BODY,
        'RequestPart': ParamLocation.BODY,
        'FormParam': ParamLocation.BODY,
        'RequestHeader': ParamLocation.HEADER,
        'HeaderParam': ParamLocation.HEADER,
        'CookieValue': ParamLocation.COOKIE,
        'CookieParam': ParamLocation.COOKIE,
    }

    @property
    def language(self) -> Language:
        return Language.JAVA

    @property
    def extensions(self) -> Set[str]:
        return {".java"}

    @property
    def patterns(self) -> List[PatternDef]:
        # Controller annotations are handled by _deep_scan_controllers
        return [
            # ===================== VERT.X =====================
            PatternDef(
                regex=r'\brouter\.(get|post|put|delete|patch|head|options)\s*\(\s*"([^"]+)"',
                framework="Vert.x",
                method_group=1,
                route_group=2,
            ),
            PatternDef(
                regex=r'\brouter\.route\s*\(\s*HttpMethod\.(\w+)\s*,\s*"([^"]+)"',
                framework="Vert.x",
                method_group=1,
                route_group=2,
            ),
        ]

    def scan_with_heuristics(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        return self._deep_scan_controllers(fragment, content, lines)

    def _deep_scan_controllers(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """Combine class-level @RequestMapping/@Path prefixes with method-level mappings."""
        results = []

        class_re = re.compile(
            r'((?:@\w+(?:\s*\(' + _ARGS + r'\))?\s*)*)'
            r'(?:(?:public|protected|private|abstract|final|static)\s+)*(?:class|interface)\s+(\w+)'
        )

        for class_match in class_re.finditer(content):
            annotations = class_match.group(1) or ""
            class_prefix = ""
            prefix_match = re.search(r'@(?:RequestMapping|Path)\s*\((' + _ARGS + r')\)', annotations)
            if prefix_match:
                class_prefix = (self._mapping_paths(prefix_match.group(1)) or [""])[0]

            brace_start = content.find('{', class_match.end())
            if brace_start == -1:
                continue
            brace_end = self.brace_block(content, brace_start)
            body_start = brace_start

            for pos, methods, routes, framework in self._method_mappings(content[body_start:brace_end]):
                abs_pos = body_start + pos
                line_num = content[:abs_pos].count('\n') + 1
                handler, params = self._signature(content, abs_pos)
                for route in routes:
                    full_route = self.join_route(class_prefix, route) or "/"
                    for method in methods:
                        results.append(self.build_candidate(
                            fragment, lines, line_num, method, full_route, framework, handler, params,
                        ))

        return results

    def _method_mappings(self, body: str) -> List[Tuple[int, List[HttpMethod], List[str], str]]:
        """(offset, methods, routes, framework) for each mapped method in a class body."""
        found = []

        verb_re = re.compile(r'@(Get|Post|Put|Delete|Patch)Mapping\b(?:\s*\((' + _ARGS + r')\))?')
        for m in verb_re.finditer(body):
            routes = self._mapping_paths(m.group(2) or "") or [""]
            found.append((m.start(), [HttpMethod.parse(m.group(1))], routes, "Spring"))

        request_re = re.compile(r'@RequestMapping\s*\((' + _ARGS + r')\)')
        for m in request_re.finditer(body):
            if self._annotates_class(body, m.end()):
                continue
            args = m.group(1)
            method_arg = re.search(r'\bmethod\s*=\s*(\{[^}]*\}|[\w.]+)', args)
            methods = self.parse_methods(method_arg.group(1)) if method_arg else []
            routes = self._mapping_paths(args) or [""]
            found.append((m.start(), methods or [HttpMethod.UNKNOWN], routes, "Spring"))

        jaxrs_re = re.compile(r'@(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\b(?!\s*\()')
        for m in jaxrs_re.finditer(body):
            window = self._annotation_cluster(body, m.start())
            path = re.search(r'@Path\s*\((' + _ARGS + r')\)', window)
            route = (self._mapping_paths(path.group(1)) or [""])[0] if path else ""
            found.append((m.start(), [HttpMethod.parse(m.group(1))], [route], "JAX-RS"))

        found.sort(key=lambda item: item[0])
        return found

    @staticmethod
    def _mapping_paths(args: str) -> List[str]:
        """Paths from ``"/x"``, ``value = "/x"``, ``path = {"/a", "/b"}``."""
        named = re.search(r'\b(?:value|path)\s*=\s*(\{[^}]*\}|"[^"]*")', args)
        if named:
            return re.findall(r'"([^"]*)"', named.group(1))
        leading = re.match(r'\s*(\{[^}]*\}|"[^"]*")', args)
        if leading:
            return re.findall(r'"([^"]*)"', leading.group(1))
        return []

    @staticmethod
    def _annotates_class(body: str, pos: int) -> bool:
        following = body[pos:pos + 300]
        decl = re.match(r'\s*(?:@\w+(?:\s*\(' + _ARGS + r'\))?\s*)*(?:(?:public|protected|private|abstract|final|static)\s+)*(class|interface)\b', following)
        return decl is not None

    @staticmethod
    def _annotation_cluster(body: str, pos: int) -> str:
        """Annotations surrounding ``pos``: from the previous statement end to the next signature."""
        start = max(body.rfind(';', 0, pos), body.rfind('}', 0, pos), body.rfind('{', 0, pos)) + 1
        end_match = re.search(r'(?<![@\w])\w+\s*\(', body[pos:])
        end = pos + end_match.start() if end_match else len(body)
        return body[start:end]

    def _signature(self, content: str, pos: int) -> Tuple[Optional[str], List[Parameter]]:
        """Handler name and annotated parameters of the method declared after ``pos``."""
        # Skip the annotation stack
        rest = content[pos:pos + 2000]
        skipped = re.match(r'(?:\s*@\w+(?:\s*\(' + _ARGS + r'\))?)*', rest)
        rest = rest[skipped.end():] if skipped else rest

        sig = re.match(
            r'\s*(?:(?:public|protected|private|static|final|synchronized|abstract|default)\s+)*'
            r'(?:<[^>]+>\s+)?[\w.]+(?:\s*<(?:[^<>]|<[^<>]*>)*>)?(?:\[\])*\s+(\w+)\s*\((' + _ARGS + r')\)',
            rest,
        )
        if not sig:
            return None, []

        params = []
        for raw in self.split_parameters(sig.group(2)):
            param = self._parse_parameter(raw)
            if param is not None:
                params.append(param)
        return sig.group(1), params

    def _parse_parameter(self, raw: str) -> Optional[Parameter]:
        annotation = re.search(r'@(\w+)(?:\s*\((' + _ARGS + r')\))?', raw)
        if not annotation or annotation.group(1) not in self.PARAM_ANNOTATIONS:
            return None
        location = self.PARAM_ANNOTATIONS[annotation.group(1)]
        args = annotation.group(2) or ""

        clean = re.sub(r'@\w+(?:\s*\(' + _ARGS + r'\))?\s*', '', raw)
        clean = re.sub(r'\bfinal\s+', '', clean).strip()
        decl = re.match(r'^([\w.<>,?\[\]\s]+?)\s+(\w+)$', clean)
        if not decl:
            return None
        java_type, var_name = decl.group(1).strip(), decl.group(2)

        explicit = re.search(r'\b(?:value|name)\s*=\s*"([^"]*)"', args) or re.match(r'\s*"([^"]*)"', args)
        name = explicit.group(1) if explicit and explicit.group(1) else var_name

        if location == ParamLocation.PATH:
            required = True
        elif annotation.group(1) in ('QueryParam', 'FormParam', 'HeaderParam', 'CookieParam'):
            required = False
        else:
            required = not re.search(r'\brequired\s*=\s*false\b|\bdefaultValue\s*=', args)

        return Parameter(name, location, self._type_hint(java_type), required)

    def _type_hint(self, java_type: str) -> str:
        base = re.sub(r'<.*>', '', java_type).split('.')[-1].strip()
        if base.endswith('[]') or base in ('List', 'Set', 'Collection', 'Iterable'):
            return 'array'
        return self.JAVA_TYPES.get(base.lower(), base)
