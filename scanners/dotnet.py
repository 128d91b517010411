"""C#/.NET scanner: ASP.NET Core controllers, Web API 2 and Minimal APIs."""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from .base import (
    BaseScanner, Language, PatternDef, Parameter, ParamLocation,
    EndpointCandidate, RawFragment, HttpMethod,
)
from .parameters import RouteParameterExtractor

# One attribute list, tolerating brackets inside string literals: [Route("api/[controller]")]
_ATTRIBUTE = r'\[(?:[^\[\]"]|"[^"]*")*\]'
_PARAMS = r'(?:[^()]|\([^()]*\))*'


class DotNetScanner(BaseScanner):
    """
    .NET/C# scanner with STATEFUL DEEP CONTROLLER PARSING.
    """

    SIMPLE_TYPES = {
        'int', 'long', 'short', 'byte', 'float', 'double', 'decimal',
        'bool', 'boolean', 'string', 'char', 'guid', 'datetime',
        'int32', 'int64', 'int16', 'uint', 'uint32', 'uint64',
        'timespan', 'datetimeoffset', 'object', 'dynamic', 'dateonly',
    }

    # Binding attributes -> location
    BINDING_ATTRIBUTES = {
        'FromBody': ParamLocation.BODY,
        'FromForm': ParamLocation.BODY,
        'FromQuery': ParamLocation.QUERY,
        'FromUri': ParamLocation.QUERY,
        'FromRoute': ParamLocation.PATH,
        'FromHeader': ParamLocation.HEADER,
    }

    # Injected services and framework types never bound from the request
    IGNORED_TYPES = {'cancellationtoken', 'httpcontext', 'httprequest', 'httpresponse', 'claimsprincipal'}

    @property
    def language(self) -> Language:
        return Language.DOTNET

    @property
    def extensions(self) -> Set[str]:
        return {".cs"}

    @property
    def patterns(self) -> List[PatternDef]:
        # Minimal API patterns only - Controllers handled by _deep_scan_controllers
        return [
            PatternDef(
                regex=r'\b\w+\.Map(Get|Post|Put|Delete|Patch)\s*\(\s*"([^"]*)"(?:\s*,\s*([\w.]+)\s*\))?',
                framework="MinimalAPI",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),
            PatternDef(
                regex=r'\b\w+\.MapMethods\s*\(\s*"([^"]*)"\s*,\s*new\s*(?:\w*\[\])?\s*\{([^}]*)\}',
                framework="MinimalAPI",
                route_group=1,
                method_group=2,
            ),
        ]

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        """Resolve MapGroup("/prefix") chains of the receiver."""
        receiver = re.match(r'(\w+)\.', match.group(0))
        if not receiver:
            return ""
        return self._group_prefixes(content).get(receiver.group(1), "")

    @staticmethod
    def _group_prefixes(content: str) -> Dict[str, str]:
        parents: Dict[str, tuple] = {}
        for m in re.finditer(r'(\w+)\s*=\s*(\w+)\s*\.\s*MapGroup\s*\(\s*"([^"]*)"', content):
            parents[m.group(1)] = (m.group(2), m.group(3))

        def resolve(var: str, depth: int = 0) -> str:
            if var not in parents or depth > 10:
                return ""
            parent, prefix = parents[var]
            return BaseScanner.join_route(resolve(parent, depth + 1), prefix)

        return {var: resolve(var) for var in parents}

    def scan_with_heuristics(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        return self._deep_scan_controllers(fragment, content, lines)

    def _deep_scan_controllers(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """
        STATEFUL REGEX PARSING for .NET Controllers.
        Supports:
        - ASP.NET Core: public class XController : ControllerBase
        - ASP.NET Web API 2: public class XController : ApiController (System.Web.Http)
        - Generated: public abstract class XControllerBase : Microsoft.AspNetCore.Mvc.Controller
        """
        results = []

        controller_pattern = (
            r'((?:\s*' + _ATTRIBUTE + r')*)\s*'
            r'public\s+(?:abstract\s+|sealed\s+|partial\s+)*class\s+(\w+)\s*:\s*'
            r'(?:Microsoft\.AspNetCore\.Mvc\.)?(\w*Controller\w*|ApiController)'
        )

        for class_match in re.finditer(controller_pattern, content):
            attributes = class_match.group(1) or ""
            controller_name = class_match.group(2)

            base_route = ""
            route_match = re.search(r'\b(?:Route|RoutePrefix)\s*\(\s*"([^"]*)"', attributes)
            if route_match:
                base_route = route_match.group(1)

            if "[controller]" in base_route.lower():
                ctrl_short_name = controller_name
                if ctrl_short_name.endswith("Controller"):
                    ctrl_short_name = ctrl_short_name[:-10]
                base_route = re.sub(r'\[controller\]', ctrl_short_name.lower(), base_route, flags=re.IGNORECASE)

            brace_start = content.find('{', class_match.end())
            if brace_start == -1:
                continue
            brace_end = self.brace_block(content, brace_start)

            action_re = re.compile(
                r'((?:\s*' + _ATTRIBUTE + r')+)\s*'
                r'(?:(?:public|internal|protected|virtual|override|async|static|new)\s+)+'
                r'[\w<>\[\],.?\s]+?\s+(\w+)\s*\((' + _PARAMS + r')\)'
            )
            for action in action_re.finditer(content, brace_start, brace_end):
                attrs = action.group(1)
                action_name = action.group(2)

                verbs = re.findall(
                    r'\b(?:Microsoft\.AspNetCore\.Mvc\.)?Http(Get|Post|Put|Delete|Patch|Head|Options)\b'
                    r'(?:\s*\(\s*(?:template:\s*)?"([^"]*)")?',
                    attrs,
                )
                route_attr = re.search(r'\bRoute\s*\(\s*(?:template:\s*)?"([^"]*)"', attrs)
                accept = re.search(r'\bAcceptVerbs\s*\(([^)]*)\)', attrs)

                pairs = []
                for verb, verb_route in verbs:
                    route = verb_route if verb_route else (route_attr.group(1) if route_attr else "")
                    pairs.append((HttpMethod.parse(verb), route))
                if not pairs and accept:
                    route = route_attr.group(1) if route_attr else ""
                    pairs = [(m, route) for m in self.parse_methods(accept.group(1))]
                if not pairs and route_attr:
                    # Routed action without a verb attribute
                    pairs = [(HttpMethod.UNKNOWN, route_attr.group(1))]
                if not pairs:
                    continue

                attr_offset = action.start(1) + len(attrs) - len(attrs.lstrip())
                line_num = content[:attr_offset].count('\n') + 1
                params = self._extract_method_parameters(action.group(3))

                for method, method_route in pairs:
                    if "[action]" in method_route.lower():
                        method_route = re.sub(r'\[action\]', action_name.lower(), method_route, flags=re.IGNORECASE)
                    full_route = self._combine_routes(base_route, method_route)
                    results.append(self.build_candidate(
                        fragment, lines, line_num, method, full_route, "ASP.NET",
                        f"{controller_name}.{action_name}", params,
                    ))

        return results

    def build_candidate(
        self,
        fragment: RawFragment,
        lines: List[str],
        line_num: int,
        method: HttpMethod,
        route: str,
        framework: str,
        handler_name: Optional[str] = None,
        extra_params: Optional[List[Parameter]] = None,
    ) -> EndpointCandidate:
        # Unattributed simple arguments named in the template bind from the route
        _, path_params = RouteParameterExtractor.to_template(route)
        names = {name for name, _ in path_params}
        extra_params = [
            Parameter(p.name, ParamLocation.PATH, p.type_hint, True)
            if p.name in names and p.location == ParamLocation.QUERY else p
            for p in extra_params or []
        ]
        return super().build_candidate(
            fragment, lines, line_num, method, route, framework, handler_name, extra_params,
        )

    def _combine_routes(self, base_route: str, method_route: str) -> str:
        """Combine class-level base route with method-level route."""
        if method_route:
            if method_route.startswith("~/"):
                return "/" + method_route[2:].lstrip('/')
            if method_route.startswith("/"):
                return method_route
        return self.join_route("/" + base_route.strip('/'), method_route) or "/"

    def _extract_method_parameters(self, params_str: str) -> List[Parameter]:
        """Bound parameters of an action signature."""
        params = []
        for raw in self.split_parameters(params_str):
            param = self._parse_parameter(raw)
            if param is not None:
                params.append(param)
        return params

    def _parse_parameter(self, param: str) -> Optional[Parameter]:
        """Parse a single parameter and determine its source and type."""
        binding = re.search(r'\[(From\w+)(?:\s*\(([^)]*)\))?\]', param)
        location = self.BINDING_ATTRIBUTES.get(binding.group(1)) if binding else None

        # Remove attributes for type parsing
        clean_param = re.sub(r'\[[^\]]+\]\s*', '', param).strip()

        type_pattern = r'^([\w<>,\[\]\?\.\s]+?)\s+(\w+)(?:\s*=\s*(.+))?$'
        match = re.match(type_pattern, clean_param)
        if not match:
            return None

        param_type = match.group(1).strip()
        param_name = match.group(2)
        default_value = match.group(3)

        if param_type.lower().split('.')[-1] in self.IGNORED_TYPES:
            return None

        if binding and binding.group(2):
            explicit = re.search(r'Name\s*=\s*"([^"]+)"', binding.group(2))
            if explicit:
                param_name = explicit.group(1)

        if location is None:
            location = ParamLocation.BODY if self._is_complex_type(param_type) else ParamLocation.QUERY

        required = default_value is None and not param_type.endswith('?')
        return Parameter(param_name, location, self._type_hint(param_type), required)

    def _is_complex_type(self, type_name: str) -> bool:
        """Check if a type is a complex type (DTO/Model) vs primitive."""
        clean_type = type_name.lower().replace('?', '').replace('[]', '')

        if re.match(r'^(list|ienumerable|icollection|array)<', clean_type):
            inner = re.search(r'<(.+)>', clean_type)
            if inner:
                return self._is_complex_type(inner.group(1))

        return clean_type not in self.SIMPLE_TYPES

    def _type_hint(self, type_name: str) -> str:
        """Convert C# type to a type hint."""
        type_lower = type_name.lower().replace('?', '')

        if type_lower in ('int', 'int32', 'short', 'int16', 'byte'):
            return "integer"
        if type_lower in ('long', 'int64'):
            return "integer:int64"
        if type_lower in ('float', 'single', 'double', 'decimal'):
            return "number"
        if type_lower in ('bool', 'boolean'):
            return "boolean"
        if type_lower in ('string', 'char'):
            return "string"
        if type_lower == 'guid':
            return "string:uuid"
        if type_lower in ('datetime', 'datetimeoffset'):
            return "string:date-time"
        if type_lower.endswith('[]') or re.match(r'^(list|ienumerable|icollection|array)<', type_lower):
            return "array"
        return type_name.replace('?', '')
