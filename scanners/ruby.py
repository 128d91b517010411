"""Ruby scanner: Rails, Sinatra, Hanami."""
from __future__ import annotations

import re
from typing import List, Optional, Set

from .base import BaseScanner, Language, PatternDef, EndpointCandidate, RawFragment, HttpMethod

# Optional route target: to: 'users#show' / => 'users#show'
_TARGET = r'(?:[^\n]*?(?:to:|=>)\s*["\']([\w/]+#\w+)["\'])?'


class RubyScanner(BaseScanner):
    """Ruby scanner supporting Rails, Sinatra, and Hanami frameworks."""

    # Conventional routes generated by `resources :name`
    RESOURCE_ACTIONS = [
        ("index", "GET", ""),
        ("create", "POST", ""),
        ("new", "GET", "/new"),
        ("show", "GET", "/:id"),
        ("edit", "GET", "/:id/edit"),
        ("update", "PATCH", "/:id"),
        ("update", "PUT", "/:id"),
        ("destroy", "DELETE", "/:id"),
    ]

    # `resource :name` (singular) has no index and no :id segment
    SINGULAR_ACTIONS = [
        ("show", "GET", ""),
        ("create", "POST", ""),
        ("new", "GET", "/new"),
        ("edit", "GET", "/edit"),
        ("update", "PATCH", ""),
        ("update", "PUT", ""),
        ("destroy", "DELETE", ""),
    ]

    @property
    def language(self) -> Language:
        return Language.RUBY

    @property
    def extensions(self) -> Set[str]:
        return {".rb"}

    @property
    def patterns(self) -> List[PatternDef]:
        return [
            # ===================== SINATRA =====================
            PatternDef(
                regex=r'^\s*(get|post|put|patch|delete|head|options)\s*\(?\s*["\']([^"\']+)["\'][^\n]*\bdo\b',
                framework="Sinatra",
                method_group=1,
                route_group=2,
            ),

            # ===================== RAILS / HANAMI =====================
            PatternDef(
                regex=r'^\s*(get|post|put|patch|delete|head|options)\s*\(?\s*["\']([^"\']+)["\']'
                      + r'(?![^\n]*\bdo\b)' + _TARGET,
                framework="Rails",
                method_group=1,
                route_group=2,
                handler_group=3,
            ),
            PatternDef(
                regex=r'^\s*match\s+["\']([^"\']+)["\']' + _TARGET
                      + r'(?:[^\n]*?via:\s*(\[[^\]]*\]|:\w+))?',
                framework="Rails",
                route_group=1,
                handler_group=2,
                method_group=3,
            ),
        ]

    def route_prefix(self, content: str, match: "re.Match", pattern_def: PatternDef) -> str:
        if pattern_def.framework == "Sinatra":
            return ""
        line_idx = content[:match.start()].count('\n')
        prefixes = self._scope_prefixes(content.split('\n'))
        return prefixes[line_idx] if line_idx < len(prefixes) else ""

    @staticmethod
    def _scope_prefixes(lines: List[str]) -> List[str]:
        """
        Path prefix in effect on each line of a routes file.

        Tracks ``namespace :api do``, ``scope 'v1' do``, ``scope path: 'v1' do``
        and nested ``resources :users do`` blocks by their ``end`` indentation.
        """
        stack: List[tuple] = []  # (indent, prefix)
        result = []
        for line in lines:
            stripped = line.strip()
            indent = len(line) - len(line.lstrip())

            if stripped == "end" or stripped.startswith("end "):
                while stack and stack[-1][0] >= indent:
                    stack.pop()

            current = stack[-1][1] if stack else ""
            result.append(current)

            if not re.search(r'\bdo\b\s*(?:\|[^|]*\|)?\s*$', stripped):
                continue

            segment: Optional[str] = None
            namespace = re.match(r'namespace\s+:(\w+)', stripped)
            scope = re.match(r'scope\s+(?:path:\s*)?["\']([^"\']*)["\']', stripped)
            plural = re.match(r'resources\s+:(\w+)', stripped)
            singular = re.match(r'resource\s+:(\w+)', stripped)
            if namespace:
                segment = "/" + namespace.group(1)
            elif scope:
                segment = "/" + scope.group(1).strip("/")
            elif plural:
                name = plural.group(1)
                segment = f"/{name}/:{RubyScanner._singular(name)}_id"
            elif singular:
                segment = "/" + singular.group(1)

            # Any other block (constraints, concern...) still needs a matching `end`
            stack.append((indent, BaseScanner.join_route(current, segment or "")))
        return result

    @staticmethod
    def _singular(name: str) -> str:
        if name.endswith("ies"):
            return name[:-3] + "y"
        if name.endswith("s") and not name.endswith("ss"):
            return name[:-1]
        return name

    def scan_with_heuristics(self, fragment: RawFragment, content: str, lines: List[str]) -> List[EndpointCandidate]:
        """Expand `resources`/`resource` declarations and `root`."""
        results = []
        prefixes = self._scope_prefixes(lines)

        resource_re = re.compile(
            r'^\s*(resources?)\s+:(\w+)'
            r'(?:[^\n]*?only:\s*(\[[^\]]*\]|:\w+))?'
            r'(?:[^\n]*?except:\s*(\[[^\]]*\]|:\w+))?',
            re.MULTILINE,
        )
        for m in resource_re.finditer(content):
            line_idx = content[:m.start()].count('\n')
            plural = m.group(1) == "resources"
            name = m.group(2)
            only = set(re.findall(r'\w+', m.group(3) or ""))
            except_ = set(re.findall(r'\w+', m.group(4) or ""))
            base = self.join_route(prefixes[line_idx], "/" + name)
            actions = self.RESOURCE_ACTIONS if plural else self.SINGULAR_ACTIONS

            for action, verb, suffix in actions:
                if only and action not in only:
                    continue
                if action in except_:
                    continue
                results.append(self.build_candidate(
                    fragment, lines, line_idx + 1, HttpMethod(verb), base + suffix,
                    "Rails", f"{name}#{action}",
                ))

        root_re = re.compile(r'^\s*root\s+(?:to:\s*)?["\']([\w/]+#\w+)["\']', re.MULTILINE)
        for m in root_re.finditer(content):
            line_idx = content[:m.start()].count('\n')
            route = self.join_route(prefixes[line_idx], "/") or "/"
            results.append(self.build_candidate(
                fragment, lines, line_idx + 1, HttpMethod.GET, route, "Rails", m.group(1),
            ))

        return results
