"""Label selectors: parsing, construction and matching against label sets."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable, Mapping


class SelectorError(ValueError):
    """Raised when a label selector string cannot be parsed."""


class Operator(enum.Enum):
    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    GREATER_THAN = ">"
    LESS_THAN = "<"


@dataclass(frozen=True)
class Requirement:
    """One condition on a single label key."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        op = self.operator
        if op is Operator.EXISTS:
            return present
        if op is Operator.DOES_NOT_EXIST:
            return not present
        if op in (Operator.EQUALS, Operator.IN):
            return present and labels[self.key] in self.values
        if op in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return not present or labels[self.key] not in self.values
        if not present:
            return False
        try:
            actual = int(labels[self.key])
            bound = int(self.values[0])
        except ValueError:
            return False
        return actual > bound if op is Operator.GREATER_THAN else actual < bound

    def __str__(self) -> str:
        op = self.operator
        if op is Operator.EXISTS:
            return self.key
        if op is Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if op in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {op.value} ({','.join(self.values)})"
        return f"{self.key}{op.value}{self.values[0]}"


@dataclass(frozen=True)
class Selector:
    """A conjunction of requirements; the empty selector matches everything."""

    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Return True when every requirement holds for the given labels."""
        labels = labels or {}
        return all(requirement.matches(labels) for requirement in self.requirements)

    def is_empty(self) -> bool:
        return not self.requirements

    def __str__(self) -> str:
        return ",".join(str(requirement) for requirement in self.requirements)


def everything() -> Selector:
    """Return a selector that matches every label set."""
    return Selector()


def selector_from_set(labels: Mapping[str, str] | None) -> Selector:
    """Return a selector requiring each key to equal its value."""
    return Selector(
        tuple(
            Requirement(key, Operator.EQUALS, (value,))
            for key, value in sorted((labels or {}).items())
        )
    )


_KEY = r"[A-Za-z0-9](?:[-A-Za-z0-9_./]*[A-Za-z0-9])?"
_VALUE = r"(?:[A-Za-z0-9](?:[-A-Za-z0-9_.]*[A-Za-z0-9])?)?"
_SET_RE = re.compile(rf"^({_KEY})\s+(in|notin)\s*\((.*)\)$")
_BINARY_RE = re.compile(rf"^({_KEY})\s*(!=|==|=)\s*({_VALUE})$")
_COMPARE_RE = re.compile(rf"^({_KEY})\s*(>|<)\s*(-?\d+)$")
_EXISTS_RE = re.compile(rf"^(!?)\s*({_KEY})$")
_VALUE_RE = re.compile(rf"^{_VALUE}$")


def _split_top_level(text: str) -> Iterable[str]:
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unbalanced parentheses in selector {text!r}")
        if char == "," and depth == 0:
            yield "".join(current)
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise SelectorError(f"unbalanced parentheses in selector {text!r}")
    yield "".join(current)


def _parse_requirement(part: str) -> Requirement:
    if match := _SET_RE.match(part):
        key, op, raw = match.groups()
        values = tuple(sorted({value.strip() for value in raw.split(",")}))
        if values == ("",):
            raise SelectorError(f"for '{op}' operator, values set can't be empty: {part!r}")
        for value in values:
            if not _VALUE_RE.match(value):
                raise SelectorError(f"invalid label value {value!r} in {part!r}")
        return Requirement(key, Operator.IN if op == "in" else Operator.NOT_IN, values)
    if match := _BINARY_RE.match(part):
        key, op, value = match.groups()
        operator = Operator.NOT_EQUALS if op == "!=" else Operator.EQUALS
        return Requirement(key, operator, (value,))
    if match := _COMPARE_RE.match(part):
        key, op, value = match.groups()
        operator = Operator.GREATER_THAN if op == ">" else Operator.LESS_THAN
        return Requirement(key, operator, (value,))
    if match := _EXISTS_RE.match(part):
        negated, key = match.groups()
        return Requirement(key, Operator.DOES_NOT_EXIST if negated else Operator.EXISTS)
    raise SelectorError(f"unable to parse requirement {part!r}")


def parse_selector(text: str) -> Selector:
    """Parse a label selector string such as ``app=web,tier in (a,b),!legacy``."""
    if not text or not text.strip():
        return everything()
    requirements = []
    for part in _split_top_level(text):
        part = part.strip()
        if not part:
            raise SelectorError(f"empty requirement in selector {text!r}")
        requirements.append(_parse_requirement(part))
    return Selector(tuple(requirements))