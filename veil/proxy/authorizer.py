"""
Request Authorizer

Answers allow/deny for a (method, path) pair against a compiled rule table.
"""

from bisect import bisect_left
from enum import Enum
from typing import Iterable, Sequence, Union

from veil.config.settings import RoutingMode
from veil.proxy.rules import (
    PathRuleTable,
    RuleTable,
    compile_path_rules,
    compile_rules,
)


class Decision(str, Enum):
    """Outcome of an authorization lookup."""

    ALLOW = "allow"
    DENY = "deny"
    NOT_FOUND = "not_found"  # Path routing mode only


def _contains_sorted(items: Sequence[str], value: str) -> bool:
    """Exact-match binary search over a strictly sorted sequence."""
    index = bisect_left(items, value)
    return index < len(items) and items[index] == value


def authorize(table: RuleTable, method: str, path: str) -> bool:
    """
    Return True if *path* is allowlisted for *method*.

    Paths must match byte-for-byte; there is no prefix matching or
    trailing-slash normalisation.
    """
    if method not in table:
        return False
    return _contains_sorted(table.paths_for(method), path)


class MethodAuthorizer:
    """Method-keyed lookup; unknown paths and methods are both denied."""

    mode = RoutingMode.METHOD

    def __init__(self, table: RuleTable):
        self.table = table

    def decide(self, method: str, path: str) -> Decision:
        if authorize(self.table, method, path):
            return Decision.ALLOW
        return Decision.DENY


class PathAuthorizer:
    """Path-keyed lookup; a path with no registered methods is NOT_FOUND."""

    mode = RoutingMode.PATH

    def __init__(self, table: PathRuleTable):
        self.table = table

    def decide(self, method: str, path: str) -> Decision:
        if not _contains_sorted(self.table.paths, path):
            return Decision.NOT_FOUND
        if _contains_sorted(self.table.methods_for(path), method):
            return Decision.ALLOW
        return Decision.DENY


Authorizer = Union[MethodAuthorizer, PathAuthorizer]


def build_authorizer(mode: RoutingMode, lines: Iterable[str]) -> Authorizer:
    """Compile *lines* once into the table the routing mode needs."""
    if mode == RoutingMode.PATH:
        return PathAuthorizer(compile_path_rules(lines))
    return MethodAuthorizer(compile_rules(lines))
