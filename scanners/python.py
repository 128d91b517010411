"""Python scanner: Flask, FastAPI, Django, Starlette, Tornado."""
from __future__ import annotations

import ast
import logging
import re
import textwrap
from typing import Dict, List, Optional, Set

from .base import (
    BaseScanner, Language, PatternDef, Parameter, ParamLocation,
    EndpointCandidate, RawFragment, HttpMethod,
)
from .parameters import RouteParameterExtractor

logger = logging.getLogger("restapisummarizer.scanners.python")

# ``methods=[...]`` / ``methods=(...)`` anywhere in the remaining arguments of the call
_METHODS_ARG = r'(?:[^)]*?methods\s*=\s*[\[(]([^\])]+)[\])])?'


class PythonScanner(BaseScanner):
    """
    Python scanner:
    - Flask: @app.route with methods=[...], Flask 2 shortcut decorators, add_url_rule
    - FastAPI: @app.get / @router.post, add_api_route, APIRouter/include_router prefixes
    - Django: path() / re_path() / url() (method is decided inside the view)
    - Starlette Route(), Tornado URL specs
    """

    # Annotation name -> type hint for handler signature parameters
    SIGNATURE_TYPES = {
        'int': 'integer',
        'float': 'number',
        'str': 'string',
        'bool': 'boolean',
        'bytes': 'string:binary',
        'UUID': 'string:uuid',
        'datetime': 'string:date-time',
        'date': 'string:date',
        'EmailStr': 'string:email',
        'HttpUrl': 'string:uri',
        'UploadFile': 'string:binary',
        'List': 'array',
        'list': 'array',
        'Dict': 'object',
        'dict': 'object',
        'Any': 'any',
    }

    # FastAPI parameter functions -> location
    PARAM_FUNCTIONS = {
        'Query': ParamLocation.QUERY,
        'Path': ParamLocation.PATH,
        'Body': ParamLocation.BODY,
        'Form': ParamLocation.BODY,
        'File': ParamLocation.BODY,
        'Header': ParamLocation.HEADER,
        'Cookie': ParamLocation.COOKIE,
    }

    IGNORED_ARGS = {'self', 'cls', 'request', 'req', 'response', 'background_tasks', 'db', 'session'}

    @property
    def language(self) -> Language:
        return Language.PYTHON

    @property
    def extensions(self) -> Set[str]:
        return {".py"}

    @property
    def handler_regex(self) -> Optional[str]:
        return r'^\s*(?:async\s+)?def\s+(\w+)'

    @property
    def patterns(self) -> List[PatternDef]:
        return [
            # ===================== FLASK =====================
            PatternDef(
                regex=r'@\w+\.route\s*\(\s*["\']([^"\']*)["\']' + _METHODS_ARG,
                framework="Flask",
                route_group=1,
                method_group=2,
                default_method="GET",
            ),
            PatternDef(
                regex=r'\.add_url_rule\s*\(\s*["\']([^"\']*)["\'](?:[^\n]*?view_func\s*=\s*([\w.]+))?' + _METHODS_ARG,
                framework="Flask",
                route_group=1,
                handler_group=2,
                method_group=3,
                default_method="GET",
            ),

            # ===================== FASTAPI (and Flask 2 / Sanic / Bottle shortcuts) =====================
            PatternDef(
                regex=r'@\w+\.(get|post|put|delete|patch|options|head|trace)\s*\(\s*["\']([^"\']*)["\']',
                framework="FastAPI",
                method_group=1,
                route_group=2,
            ),
            PatternDef(
                regex=r'\.add_api_route\s*\(\s*["\']([^"\']*)["\']\s*,\s*([\w.]+)' + _METHODS_ARG,
                framework="FastAPI",
                route_group=1,
                handler_group=2,
                method_group=3,
                default_method="GET",
            ),

            # ===================== DJANGO =====================
            PatternDef(
                regex=r'\b(?:re_)?path\s*\(\s*r?["\']([^"\']*)["\']\s*,\s*(?!include\b)([\w.]+)',
                framework="Django",
                route_group=1,
                handler_group=2,
            ),
            PatternDef(
                regex=r'\burl\s*\(\s*r?["\']([^"\']+)["\']\s*,\s*(?!include\b)([\w.]+)',
                framework="Django",
                route_group=1,
                handler_group=2,
            ),

            # ===================== STARLETTE =====================
            PatternDef(
                regex=r'\bRoute\s*\(\s*["\']([^"\']*)["\']\s*,\s*(?:endpoint\s*=\s*)?([\w.]+)' + _METHODS_ARG,
                framework="Starlette",
                route_group=1,
                handler_group=2,
                method_group=3,
                default_method="GET",
            ),

            # ===================== TORNADO =====================
            PatternDef(
                regex=r'\(\s*r?["\']([^"\']+)["\']\s*,\s*(\w+Handler)\s*[,)]',
                framework="Tornado",
                route_group=1,
                handler_group=2,
            ),
        ]

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        """Resolve APIRouter/Blueprint prefixes for decorator-declared routes."""
        var = re.match(r'@(\w+)\.', match.group(0))
        if not var:
            return ""
        return self._router_prefixes(content).get(var.group(1), "")

    @staticmethod
    def _router_prefixes(content: str) -> Dict[str, str]:
        prefixes: Dict[str, str] = {}

        # router = APIRouter(prefix="/items") / bp = Blueprint("x", __name__, url_prefix="/x")
        for m in re.finditer(r'(\w+)\s*=\s*(?:APIRouter|Blueprint)\s*\(([^)]*)\)', content):
            prefix = re.search(r'\b(?:url_)?prefix\s*=\s*["\']([^"\']*)["\']', m.group(2))
            if prefix:
                prefixes[m.group(1)] = prefix.group(1)

        # app.include_router(router, prefix="/api") / app.register_blueprint(bp, url_prefix="/api")
        for m in re.finditer(
            r'(?:include_router|register_blueprint)\s*\(\s*(\w+)\s*,([^)]*)\)', content
        ):
            prefix = re.search(r'\b(?:url_)?prefix\s*=\s*["\']([^"\']*)["\']', m.group(2))
            if prefix:
                prefixes[m.group(1)] = BaseScanner.join_route(prefix.group(1), prefixes.get(m.group(1), ""))

        return prefixes

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
        if handler_name and extra_params is None:
            _, path_params = RouteParameterExtractor.to_template(route)
            extra_params = self.signature_parameters(
                lines, line_num, handler_name, {name for name, _ in path_params}
            )
        return super().build_candidate(
            fragment, lines, line_num, method, route, framework, handler_name, extra_params,
        )

    # =========================================================================
    # HANDLER SIGNATURE ANALYSIS (AST)
    # =========================================================================

    def signature_parameters(
        self, lines: List[str], line_num: int, handler_name: str, path_names: Set[str]
    ) -> List[Parameter]:
        """
        Recover query/body/header parameters from the decorated function's signature.

        Only the ``def`` directly below the declaration is considered, and only
        when its name matches the handler. Unannotated arguments are ignored,
        so plain Flask/Django views contribute nothing beyond their path.
        """
        source = self._signature_source(lines, line_num, handler_name)
        if not source:
            return []
        try:
            tree = ast.parse(source)
        except SyntaxError as e:
            logger.debug(f"Could not parse signature of {handler_name}: {e}")
            return []

        func = next(
            (n for n in ast.walk(tree) if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))),
            None,
        )
        if func is None:
            return []

        args = func.args
        positional = args.posonlyargs + args.args
        # Defaults align with the tail of the positional list
        defaults: List[Optional[ast.expr]] = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
        pairs = list(zip(positional, defaults)) + list(zip(args.kwonlyargs, args.kw_defaults))

        params = []
        for arg, default in pairs:
            if arg.arg in self.IGNORED_ARGS:
                continue
            param = self._parameter_from_arg(arg, default, path_names)
            if param is not None:
                params.append(param)
        return params

    def _signature_source(self, lines: List[str], line_num: int, handler_name: str) -> Optional[str]:
        for idx in range(line_num, min(len(lines), line_num + self.handler_lookahead)):
            m = re.match(self.handler_regex, lines[idx])
            if not m:
                continue
            if m.group(1) != handler_name:
                return None
            collected = []
            for line in lines[idx:idx + 20]:
                collected.append(line)
                if re.search(r'\)\s*(?:->[^:]+)?:\s*(?:#.*)?$', line):
                    break
            return textwrap.dedent("\n".join(collected)) + "\n    pass\n"
        return None

    def _parameter_from_arg(
        self, arg: ast.arg, default: Optional[ast.expr], path_names: Set[str]
    ) -> Optional[Parameter]:
        location = None
        required = default is None

        if isinstance(default, ast.Call):
            func_name = self._node_name(default.func)
            if func_name in ('Depends', 'Security'):
                return None
            location = self.PARAM_FUNCTIONS.get(func_name)
            if location is not None:
                first = default.args[0] if default.args else None
                required = isinstance(first, ast.Constant) and first.value is Ellipsis

        if arg.arg in path_names:
            location = ParamLocation.PATH
            required = True

        if arg.annotation is None and location is None:
            return None

        type_hint = self._annotation_hint(arg.annotation) if arg.annotation is not None else None
        if location is None:
            # Scalars become query parameters, models become the request body
            is_model = type_hint is not None and type_hint not in self.SIGNATURE_TYPES.values()
            location = ParamLocation.BODY if is_model else ParamLocation.QUERY

        return Parameter(arg.arg, location, type_hint, required)

    def _annotation_hint(self, node: ast.expr) -> Optional[str]:
        if isinstance(node, ast.Subscript):
            container = self._node_name(node.value)
            if container in ('Optional', 'Annotated'):
                inner = node.slice
                if isinstance(inner, ast.Tuple) and inner.elts:
                    inner = inner.elts[0]
                return self._annotation_hint(inner)
            return self.SIGNATURE_TYPES.get(container, container)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            # ``int | None``
            for side in (node.left, node.right):
                if not (isinstance(side, ast.Constant) and side.value is None):
                    return self._annotation_hint(side)
            return None
        name = self._node_name(node)
        if name is None:
            return None
        return self.SIGNATURE_TYPES.get(name, name)

    @staticmethod
    def _node_name(node: ast.expr) -> Optional[str]:
        if isinstance(node, ast.Name):
            return node.id
        if isinstance(node, ast.Attribute):
            return node.attr
        if isinstance(node, ast.Constant) and isinstance(node.value, str):
            return node.value
        return None
