"""
Crash Predicates

Boolean tests over CrashRecord attributes used to select which crash a
waiter cares about.

Field predicates and their combinations are plain data and can be
serialized with to_dict()/from_dict(). Arbitrary callables are wrapped in
FunctionPredicate.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Union

from .models import CrashRecord


class CrashPredicate(ABC):
    """A single evaluation method over a CrashRecord."""

    @abstractmethod
    def matches(self, record: CrashRecord) -> bool:
        ...

    def __call__(self, record: CrashRecord) -> bool:
        return self.matches(record)

    def __and__(self, other: "CrashPredicate") -> "CrashPredicate":
        return AllOf((self, as_predicate(other)))

    def __or__(self, other: "CrashPredicate") -> "CrashPredicate":
        return AnyOf((self, as_predicate(other)))

    def __invert__(self) -> "CrashPredicate":
        return Not(self)

    def to_dict(self) -> dict:
        raise TypeError(f"{type(self).__name__} is not serializable")

    @staticmethod
    def from_dict(data: dict) -> "CrashPredicate":
        """Rebuild a predicate produced by to_dict()."""
        kind = data.get("kind")
        if kind == "field":
            return FieldPredicate(data["field"], data["op"], data["value"])
        if kind == "all":
            return AllOf(tuple(CrashPredicate.from_dict(p) for p in data["predicates"]))
        if kind == "any":
            return AnyOf(tuple(CrashPredicate.from_dict(p) for p in data["predicates"]))
        if kind == "not":
            return Not(CrashPredicate.from_dict(data["predicate"]))
        if kind == "always":
            return Always()
        raise ValueError(f"Unknown predicate kind: {kind!r}")


def _op_eq(actual, expected):
    return actual == expected


def _op_ne(actual, expected):
    return actual != expected


def _op_in(actual, expected):
    if isinstance(expected, str) and not isinstance(actual, str):
        return False
    return actual in expected


def _op_contains(actual, expected):
    return actual is not None and expected in actual


def _op_startswith(actual, expected):
    return isinstance(actual, str) and actual.startswith(expected)


def _op_regex(actual, expected):
    return isinstance(actual, str) and re.search(expected, actual) is not None


OPERATORS = {
    "eq": _op_eq,
    "ne": _op_ne,
    "in": _op_in,
    "contains": _op_contains,
    "startswith": _op_startswith,
    "regex": _op_regex,
}


@dataclass(frozen=True)
class FieldPredicate(CrashPredicate):
    """Compare one record attribute (or metadata key) against a value."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unknown operator: {self.op!r}")
        if self.op == "in" and isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    def matches(self, record: CrashRecord) -> bool:
        return bool(OPERATORS[self.op](record.get(self.field), self.value))

    def to_dict(self) -> dict:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"kind": "field", "field": self.field, "op": self.op, "value": value}


@dataclass(frozen=True)
class AllOf(CrashPredicate):
    predicates: Tuple[CrashPredicate, ...]

    def matches(self, record: CrashRecord) -> bool:
        return all(p.matches(record) for p in self.predicates)

    def to_dict(self) -> dict:
        return {"kind": "all", "predicates": [p.to_dict() for p in self.predicates]}


@dataclass(frozen=True)
class AnyOf(CrashPredicate):
    predicates: Tuple[CrashPredicate, ...]

    def matches(self, record: CrashRecord) -> bool:
        return any(p.matches(record) for p in self.predicates)

    def to_dict(self) -> dict:
        return {"kind": "any", "predicates": [p.to_dict() for p in self.predicates]}


@dataclass(frozen=True)
class Not(CrashPredicate):
    predicate: CrashPredicate

    def matches(self, record: CrashRecord) -> bool:
        return not self.predicate.matches(record)

    def to_dict(self) -> dict:
        return {"kind": "not", "predicate": self.predicate.to_dict()}


@dataclass(frozen=True)
class Always(CrashPredicate):
    """Matches every crash."""

    def matches(self, record: CrashRecord) -> bool:
        return True

    def to_dict(self) -> dict:
        return {"kind": "always"}


class FunctionPredicate(CrashPredicate):
    """Wraps an arbitrary callable. Not serializable."""

    def __init__(self, func: Callable[[CrashRecord], bool], name: str = ""):
        self.func = func
        self.name = name or getattr(func, "__name__", repr(func))

    def matches(self, record: CrashRecord) -> bool:
        return bool(self.func(record))

    def __repr__(self) -> str:
        return f"FunctionPredicate({self.name})"


PredicateLike = Union[CrashPredicate, Callable[[CrashRecord], bool]]


def as_predicate(obj: PredicateLike) -> CrashPredicate:
    """Accept a CrashPredicate or a plain callable."""
    if isinstance(obj, CrashPredicate):
        return obj
    if callable(obj):
        return FunctionPredicate(obj)
    raise TypeError(f"Not a predicate: {obj!r}")


# Shorthands for the commonly matched fields

def process_name(name: str) -> FieldPredicate:
    return FieldPredicate("process_name", "eq", name)


def pid(value: int) -> FieldPredicate:
    return FieldPredicate("pid", "eq", value)


def parent_pid(value: int) -> FieldPredicate:
    return FieldPredicate("parent_pid", "eq", value)


def signal(name: str) -> FieldPredicate:
    return FieldPredicate("signal", "eq", name)


def executable_path(path: str) -> FieldPredicate:
    return FieldPredicate("executable_path", "eq", path)


def bundle_id(value: str) -> FieldPredicate:
    return FieldPredicate("bundle_id", "eq", value)


def any_crash() -> Always:
    return Always()
