"""Name filters for the group/host/application/item hierarchy.

A filter string is classified once, at parse time:

- ``""`` and ``"*"`` match everything
- ``/pattern/flags`` is a regular expression (JavaScript flag letters)
- ``{a,b,c}`` is the legacy literal set, matched exactly
- anything else matches the entity name exactly
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from zabbix_datasource.errors import ConfigurationError

WILDCARD = "*"

_REGEX_FILTER = re.compile(r"^/(.*)/([gmiyus]*)$", re.DOTALL)

# JavaScript flags; g and y have no meaning for a single match test.
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,
    "g": 0,
    "y": 0,
}

_REGEX_SPECIAL = re.compile(r"([\\^$*+?.()|{}\[\]/])")


class Named(Protocol):
    """Anything with a display name."""

    name: str


N = TypeVar("N", bound=Named)


@dataclass(frozen=True)
class Exact:
    """Matches names equal to ``value``."""

    value: str

    def matches(self, name: str) -> bool:
        return name == self.value

    @property
    def matches_all(self) -> bool:
        return False


@dataclass(frozen=True)
class Pattern:
    """Matches names the regular expression finds a match in."""

    source: str
    flags: str = ""

    def __post_init__(self) -> None:
        # Compile eagerly so malformed syntax fails at parse time.
        object.__setattr__(self, "_regex", compile_js_regex(self.source, self.flags))

    @property
    def regex(self) -> re.Pattern[str]:
        return self._regex  # type: ignore[attr-defined, no-any-return]

    def matches(self, name: str) -> bool:
        return self.regex.search(name) is not None

    @property
    def matches_all(self) -> bool:
        return self.source in (".*", "")


NameFilter = Exact | Pattern


def compile_js_regex(source: str, flags: str = "") -> re.Pattern[str]:
    """Compile a JavaScript-style regex body and flag letters.

    Raises:
        ConfigurationError: If the pattern is malformed or a flag is unknown.
    """
    re_flags = 0
    for flag in flags:
        if flag not in _FLAG_MAP:
            raise ConfigurationError(f"Unknown regex flag {flag!r} in /{source}/{flags}")
        re_flags |= _FLAG_MAP[flag]
    try:
        return re.compile(source, re_flags)
    except re.error as e:
        raise ConfigurationError(
            f"Invalid regular expression /{source}/{flags}: {e}",
            details={"pattern": source, "flags": flags},
        ) from e


MATCH_ALL = Pattern(".*")


def is_regex(value: str | None) -> bool:
    """Whether the string uses the ``/pattern/flags`` notation."""
    return bool(value) and _REGEX_FILTER.match(value or "") is not None


def escape_regex(value: str) -> str:
    """Escape regex metacharacters (including ``/``)."""
    return _REGEX_SPECIAL.sub(r"\\\1", value)


def split_literal_set(value: str) -> list[str]:
    """``"{a,b,c}"`` -> ``["a", "b", "c"]``."""
    return [part.strip() for part in value.strip()[1:-1].split(",") if part.strip()]


def is_literal_set(value: str) -> bool:
    """Whether the string is a legacy ``{a,b,c}`` set."""
    value = value.strip()
    return len(value) >= 2 and value[0] == "{" and value[-1] == "}"


def parse_filter(value: str | None) -> NameFilter:
    """Classify a filter string.

    Args:
        value: Filter as typed by the user.

    Returns:
        Exact or Pattern filter.

    Raises:
        ConfigurationError: If a ``/regex/`` filter does not compile.
    """
    if value is None or value == "" or value == WILDCARD:
        return MATCH_ALL

    match = _REGEX_FILTER.match(value)
    if match:
        return Pattern(match.group(1), match.group(2))

    if is_literal_set(value):
        names = split_literal_set(value)
        return Pattern("^(" + "|".join(re.escape(name) for name in names) + ")$")

    return Exact(value)


def as_filter(value: "str | NameFilter | None") -> NameFilter:
    """Accept either an already-parsed filter or a raw string."""
    if isinstance(value, (Exact, Pattern)):
        return value
    return parse_filter(value)


def filter_by_name(entities: Iterable[N], name_filter: NameFilter) -> list[N]:
    """Keep the entities whose name matches the filter."""
    if isinstance(name_filter, Pattern) and name_filter.matches_all:
        return list(entities)
    return [entity for entity in entities if name_filter.matches(entity.name)]


def zabbix_template_format(value: str | list[str]) -> str:
    """Format a template variable value for use inside a regex filter.

    Single values are escaped; multi-values become ``(a|b|c)``.
    """
    if isinstance(value, str):
        return escape_regex(value)
    return "(" + "|".join(escape_regex(v) for v in value) + ")"
