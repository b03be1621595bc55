"""
Access Rules

Compiles METHOD~path allowlist lines into immutable lookup tables.

rules.txt
---------
GET~/status
POST~/containers/create
"""

from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)

RULE_DELIMITER = "~"

SUPPORTED_METHODS = frozenset({"GET", "POST", "DELETE", "PATCH", "PUT"})


@dataclass(frozen=True)
class AccessRule:
    """A single allowlisted (method, path) pair."""

    method: str
    path: str


def parse_rule(line: str) -> Optional[AccessRule]:
    """Split a raw rule line; None unless it has exactly two non-empty fields."""
    fields = line.split(RULE_DELIMITER)
    if len(fields) != 2 or not all(fields):
        return None
    return AccessRule(method=fields[0], path=fields[1])


def _freeze(groups: Dict[str, List[str]]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType(
        {key: tuple(sorted(set(values))) for key, values in groups.items()}
    )


class RuleTable:
    """
    Method -> sorted unique paths.

    Built once and never mutated; safe for concurrent readers. A method
    missing from the table allows no paths.
    """

    __slots__ = ("_paths",)

    def __init__(self, paths_by_method: Mapping[str, Tuple[str, ...]]):
        self._paths = paths_by_method

    def paths_for(self, method: str) -> Tuple[str, ...]:
        return self._paths.get(method, ())

    @property
    def methods(self) -> Tuple[str, ...]:
        return tuple(sorted(self._paths))

    @property
    def rule_count(self) -> int:
        return sum(len(paths) for paths in self._paths.values())

    def __contains__(self, method: object) -> bool:
        return method in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.methods)

    def __repr__(self) -> str:
        return f"RuleTable(methods={len(self)}, rules={self.rule_count})"


class PathRuleTable:
    """
    Path -> sorted unique methods.

    Used by path routing mode, where an unknown path and a known path
    with a disallowed method are reported differently.
    """

    __slots__ = ("_methods", "_paths")

    def __init__(self, methods_by_path: Mapping[str, Tuple[str, ...]]):
        self._methods = methods_by_path
        self._paths = tuple(sorted(methods_by_path))

    @property
    def paths(self) -> Tuple[str, ...]:
        return self._paths

    def methods_for(self, path: str) -> Tuple[str, ...]:
        return self._methods.get(path, ())

    @property
    def rule_count(self) -> int:
        return sum(len(methods) for methods in self._methods.values())

    def __contains__(self, path: object) -> bool:
        return path in self._methods

    def __len__(self) -> int:
        return len(self._methods)

    def __repr__(self) -> str:
        return f"PathRuleTable(paths={len(self)}, rules={self.rule_count})"


def compile_rules(lines: Iterable[str]) -> RuleTable:
    """
    Compile raw rule lines into a method-keyed RuleTable.

    Malformed lines are skipped without error; the method token is kept
    verbatim, so unsupported methods become unreachable entries.
    """
    grouped: Dict[str, List[str]] = defaultdict(list)
    skipped = 0

    for line in lines:
        rule = parse_rule(line)
        if rule is None:
            skipped += 1
            continue
        grouped[rule.method].append(rule.path)

    table = RuleTable(_freeze(grouped))
    logger.debug(
        "access_rules_compiled",
        methods=len(table),
        rules=table.rule_count,
        skipped=skipped,
    )
    return table


def compile_path_rules(lines: Iterable[str]) -> PathRuleTable:
    """Compile raw rule lines into a path-keyed PathRuleTable."""
    grouped: Dict[str, List[str]] = defaultdict(list)

    for line in lines:
        rule = parse_rule(line)
        if rule is None:
            continue
        grouped[rule.path].append(rule.method)

    return PathRuleTable(_freeze(grouped))


def read_rule_lines(path: Union[str, Path, None]) -> List[str]:
    """
    Read the access-rules file, returning its non-empty lines in order.

    An unreadable file is logged and treated as empty, which denies
    every request.
    """
    if not path:
        return []

    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("access_rules_unreadable", path=str(path), error=str(e))
        return []

    lines = (raw.removesuffix("\r") for raw in text.split("\n"))
    return [line for line in lines if line]
