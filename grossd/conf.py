"""Configuration file parsing: ``name = value ; param ; param`` lines."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

__all__ = [
    "ConfigError",
    "ConfigEntry",
    "Config",
    "split_pair",
    "parse_line",
    "read_config",
]


class ConfigError(Exception):
    """Raised for unreadable or invalid configuration."""


@dataclass
class ConfigEntry:
    """One configured value with its optional parameters."""

    name: str
    value: str
    params: tuple[str, ...] = ()
    is_default: bool = False


def split_pair(text: str, delim: str) -> tuple[str, str] | None:
    """Split at the first ``delim`` and strip both sides; None if absent."""
    head, sep, tail = text.partition(delim)
    if not sep:
        return None
    return head.strip(), tail.strip()


def parse_line(line: str) -> tuple[str, str, tuple[str, ...]] | None:
    """Parse a line into ``(name, value, params)``; None if it holds no pair.

    Text after ``#`` is a comment. Parameters follow the value, separated
    by ``;``.
    """
    line = line.split("#", 1)[0]
    pair = split_pair(line, "=")
    if pair is None:
        return None
    name, rest = pair
    if not name:
        raise ConfigError(f"missing name in: {line.strip()}")
    value, *params = (part.strip() for part in rest.split(";"))
    return name, value, tuple(params)


class Config:
    """Ordered configuration; the most recently added entry comes first."""

    def __init__(
        self,
        defaults: Iterable[tuple[str, str]] = (),
        multivalues: Iterable[str] = (),
    ) -> None:
        self.multivalues = frozenset(multivalues)
        self._entries: list[ConfigEntry] = []
        for name, value in defaults:
            self.add(name, value, (), True)

    def add(
        self,
        name: str,
        value: str,
        params: Sequence[str] = (),
        is_default: bool = False,
    ) -> ConfigEntry:
        """Put a new entry at the front."""
        entry = ConfigEntry(name, value, tuple(params), is_default)
        self._entries.insert(0, entry)
        return entry

    def record(self, name: str, value: str, params: Sequence[str] = ()) -> None:
        """Record a value read from a file.

        A multivalue name drops its defaults and gains an entry; any other
        name has the value of its first entry replaced, or is added.
        """
        if name in self.multivalues:
            self._entries = [
                e for e in self._entries if not (e.is_default and e.name == name)
            ]
            self.add(name, value, params)
            return
        for entry in self._entries:
            if entry.name == name:
                entry.value = value
                return
        self.add(name, value, params)

    def get(self, name: str) -> str | None:
        """The value of the first entry called ``name``, or None."""
        for entry in self._entries:
            if entry.name == name:
                return entry.value
        return None

    def entries(self, name: str | None = None) -> list[ConfigEntry]:
        """All entries, or those called ``name``, front first."""
        return [e for e in self._entries if name is None or e.name == name]

    def __iter__(self):
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


def read_config(
    config: Config,
    path: str | os.PathLike[str],
    valid_names: Iterable[str],
    deprecated_names: Iterable[str] = (),
    param_limits: Mapping[str, tuple[int, int]] | None = None,
) -> Config:
    """Read a configuration file into ``config`` and return it.

    ``param_limits`` maps a name to its (minimum, maximum) parameter count;
    names without limits take no parameters.
    """
    valid = frozenset(valid_names)
    deprecated = frozenset(deprecated_names)
    limits = param_limits or {}
    try:
        handle = open(path, encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigError(f"cannot open {path}: {exc}") from exc
    with handle:
        for number, raw in enumerate(handle, start=1):
            line = raw.rstrip("\r\n")
            try:
                parsed = parse_line(line)
            except ConfigError as exc:
                raise ConfigError(
                    f"Couldn't parse configfile at line {number}: {line}"
                ) from exc
            if parsed is None:
                continue
            name, value, params = parsed
            if name in valid:
                low, high = limits.get(name, (0, 0))
                if not low <= len(params) <= high:
                    raise ConfigError(
                        f"Invalid parameter count for configuration parameter: {name}"
                    )
                config.record(name, value, params)
            elif name in deprecated:
                raise ConfigError(f"Deprecated configuration parameter: {name}")
            else:
                raise ConfigError(f"Unknown configuration parameter: {name}")
    return config