"""
Route Parameter Extraction
==========================
Turns framework route literals into ``{name}`` templates and recovers the
path parameters embedded in them, without any LLM involvement.

Supported syntaxes:
- FastAPI / ASP.NET / Spring: /users/{user_id}, /users/{user_id:int}, /users/{id?}
- Flask / Django:             /users/<user_id>, /users/<int:user_id>
- Django regex:               ^users/(?P<user_id>[0-9]+)/$
- Express / Rails / Sinatra:  /users/:user_id, /users/:user_id?
- Gin / Sinatra wildcards:    /static/*filepath
"""

import re
import logging
from typing import List, Optional, Tuple

logger = logging.getLogger("restapisummarizer.scanners.parameters")


class RouteParameterExtractor:
    """
    Extract path parameters from route patterns using regex.

    Everything here returns plain tuples so the scanner data model can build
    its own ``Parameter`` objects.
    """

    # Type mappings for different frameworks
    TYPE_MAPPINGS = {
        # Python types
        'int': 'integer',
        'integer': 'integer',
        'float': 'number',
        'str': 'string',
        'string': 'string',
        'slug': 'string',
        'bool': 'boolean',
        'boolean': 'boolean',
        'uuid': 'string:uuid',
        'path': 'string',

        # ASP.NET / C# types
        'guid': 'string:uuid',
        'long': 'integer:int64',
        'decimal': 'number',
        'double': 'number',
        'datetime': 'string:date-time',
        'alpha': 'string',

        # JavaScript / TypeScript types
        'number': 'number',
    }

    # Hints that say nothing beyond "some value"
    GENERIC_TYPES = {'string', 'str', 'any', 'object', 'unknown', 'path'}

    _DJANGO_REGEX = re.compile(r'\(\?P<(\w+)>[^)]*\)')
    _BRACE = re.compile(r'\{(\w+)\??(?::([^{}]+))?\}')
    _ANGLE = re.compile(r'<(?:(\w+):)?(\w+)>')
    _COLON = re.compile(r'(?<=/):(\w+)\??(?:\([^)]*\))?')
    _WILDCARD = re.compile(r'(?<=/)\*(\w+)')

    @staticmethod
    def to_template(route: str) -> Tuple[str, List[Tuple[str, Optional[str]]]]:
        """
        Convert a route literal to a ``{name}`` template.

        Returns:
            (template, [(name, type_hint), ...]) with path parameters in the
            order they appear in the route.

        Example:
            >>> to_template("/users/<int:user_id>/posts/:slug")
            ('/users/{user_id}/posts/{slug}', [('user_id', 'integer'), ('slug', None)])
        """
        template = route.strip()
        # Django regex anchors
        if template.startswith('^'):
            template = template[1:]
        if template.endswith('$'):
            template = template[:-1]

        found: List[Tuple[str, Optional[str]]] = []

        def collect(name_group, type_group):
            def replace(match):
                name = match.group(name_group)
                raw_type = match.group(type_group) if type_group else None
                found.append((name, RouteParameterExtractor.infer_type(raw_type)))
                return '{' + name + '}'
            return replace

        # Each pass rewrites into {name}; later passes skip already-braced text
        template = RouteParameterExtractor._DJANGO_REGEX.sub(collect(1, None), template)
        template = RouteParameterExtractor._ANGLE.sub(collect(2, 1), template)
        template = RouteParameterExtractor._COLON.sub(collect(1, None), template)
        template = RouteParameterExtractor._WILDCARD.sub(collect(1, None), template)

        # Brace placeholders may carry constraints: {id:int:min(1)}
        params: List[Tuple[str, Optional[str]]] = []
        seen = set()

        def normalize_brace(match):
            name = match.group(1)
            return '{' + name + '}'

        for match in RouteParameterExtractor._BRACE.finditer(template):
            name = match.group(1)
            if name in seen:
                continue
            seen.add(name)
            hint = RouteParameterExtractor.infer_type(match.group(2))
            if hint is None:
                hint = next((h for n, h in found if n == name), None)
            params.append((name, hint))
        template = RouteParameterExtractor._BRACE.sub(normalize_brace, template)

        if params:
            logger.debug(f"Extracted {len(params)} path parameters from route: {route}")

        return template, params

    @staticmethod
    def infer_type(type_hint: Optional[str]) -> Optional[str]:
        """
        Map a framework type token to a type hint.

        ``int`` -> ``integer``, ``uuid`` -> ``string:uuid``. Constraint chains
        such as ``int:min(1)`` use their first token; regex constraints give
        ``None``; unrecognised converter names are kept as-is.
        """
        if not type_hint:
            return None
        token = re.split(r'[:(]', type_hint.strip(), maxsplit=1)[0].lower()
        if not re.fullmatch(r'\w+', token):
            return None
        return RouteParameterExtractor.TYPE_MAPPINGS.get(token, token)

    @staticmethod
    def type_specificity(type_hint: Optional[str]) -> int:
        """Rank a type hint: None < generic (``string``, ``any``) < concrete."""
        if not type_hint:
            return 0
        if type_hint.lower() in RouteParameterExtractor.GENERIC_TYPES:
            return 1
        return 2
