"""Route table shared by every cloud adapter.

A route binds an HTTP method and a path template such as
``/children/{childId}`` to a cloud-agnostic handler, together with its
authorization requirements. Adapters whose runtime performs its own routing
(API Gateway, Azure Functions) register one function per route; adapters that
receive every path at one entry point use ``RouteTable.match``.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Pattern, Tuple

from core.interfaces import Handler

logger = logging.getLogger(__name__)

_PARAM_PATTERN = re.compile(r"\{(\w+)\}")


def path_to_regex(path_template: str) -> Pattern[str]:
    """Convert a path template to a compiled regular expression.

    Example: "/children/{childId}/transactions"
        -> "^/children/(?P<childId>[^/]+)/transactions/?$"
    """
    regex_pattern = _PARAM_PATTERN.sub(r"(?P<\1>[^/]+)", path_template.rstrip("/"))
    return re.compile(f"^{regex_pattern}/?$")


@dataclass(frozen=True)
class Route:
    """One HTTP endpoint.

    Attributes:
        name: Function name used when registering with a runtime
        method: HTTP method (upper case)
        path: Path template relative to the API prefix
        handler: Cloud-agnostic handler coroutine function
        authorize: Whether a valid bearer token is required
        roles: Roles allowed to call the route; empty allows any authenticated user
    """

    name: str
    method: str
    path: str
    handler: Handler
    authorize: bool = True
    roles: Tuple[str, ...] = ()
    _regex: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "roles", tuple(self.roles))
        object.__setattr__(self, "_regex", path_to_regex(self.path))

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        """Return path parameters if this route serves the request, else None."""
        if method.upper() != self.method:
            return None
        match = self._regex.match(path)
        if match is None:
            return None
        return match.groupdict()


class RouteTable:
    """Ordered collection of routes; the first match wins."""

    def __init__(self, routes: Optional[List[Route]] = None, prefix: str = "") -> None:
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        for route in routes or []:
            self.add(route)

    def add(self, route: Route) -> None:
        if any(existing.name == route.name for existing in self._routes):
            raise ValueError(f"Duplicate route name: {route.name}")
        self._routes.append(route)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def match(self, method: str, path: str) -> Tuple[Optional[Route], Dict[str, str]]:
        """Resolve a request to a route.

        Args:
            method: HTTP method
            path: Request path, with or without the table prefix

        Returns:
            Tuple of (route or None, path parameters)
        """
        if self.prefix and path.startswith(self.prefix + "/"):
            path = path[len(self.prefix):]

        for route in self._routes:
            params = route.match(method, path)
            if params is not None:
                return route, params

        logger.debug(f"No route for {method} {path}")
        return None, {}
