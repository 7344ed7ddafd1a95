"""Routing — pattern-compiled routes, route groups, and the router."""

from perch.routing.group import Group
from perch.routing.route import Route, uncamelize
from perch.routing.router import POSITION_FIRST, POSITION_LAST, Router

__all__ = [
    "POSITION_FIRST",
    "POSITION_LAST",
    "Group",
    "Route",
    "Router",
    "uncamelize",
]
