"""Label requirements, selectors and the hashing used for hashed label values."""

from __future__ import annotations

import enum
import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

_NAME = re.compile(r"([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]")
_DNS1123_SUBDOMAIN = re.compile(
    r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
)
_MD5 = re.compile(r"[a-f0-9]{32}\Z", re.IGNORECASE)

_MAX_NAME_LENGTH = 63
_MAX_PREFIX_LENGTH = 253


def encode_string(value: str) -> str:
    """Return the hex MD5 digest of ``value``, as stored in hashed labels."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def is_md5_hash(value: str) -> bool:
    """Tell whether ``value`` ends in 32 hexadecimal digits."""
    return _MD5.search(value) is not None


class Operator(str, enum.Enum):
    """Comparison applied by a label requirement."""

    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


_SINGLE_VALUE = frozenset({Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.NOT_EQUALS})
_SET_VALUES = frozenset({Operator.IN, Operator.NOT_IN})
_NO_VALUES = frozenset({Operator.EXISTS, Operator.DOES_NOT_EXIST})


def _validate_key(key: str) -> None:
    parts = key.split("/")
    if len(parts) > 2:
        raise ValueError(f"invalid label key {key!r}: at most one '/' is allowed")
    if len(parts) == 2:
        prefix = parts[0]
        if not prefix or len(prefix) > _MAX_PREFIX_LENGTH or not _DNS1123_SUBDOMAIN.fullmatch(prefix):
            raise ValueError(f"invalid label key {key!r}: prefix must be a DNS subdomain")
    name = parts[-1]
    if not name or len(name) > _MAX_NAME_LENGTH or not _NAME.fullmatch(name):
        raise ValueError(f"invalid label key {key!r}: name part is not a valid qualified name")


def _validate_value(value: str) -> None:
    if len(value) > _MAX_NAME_LENGTH:
        raise ValueError(f"invalid label value {value!r}: must be no more than 63 characters")
    if value and not _NAME.fullmatch(value):
        raise ValueError(
            f"invalid label value {value!r}: must consist of alphanumerics, '-', '_' or '.', "
            "and start and end with an alphanumeric"
        )


@dataclass(frozen=True)
class Requirement:
    """A single condition on one label key."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.values, str):
            raise TypeError("values must be a collection of strings, not a string")
        operator = Operator(self.operator)
        values = tuple(self.values)
        object.__setattr__(self, "operator", operator)
        object.__setattr__(self, "values", values)

        _validate_key(self.key)
        if operator in _SINGLE_VALUE and len(values) != 1:
            raise ValueError(f"exact-match operator {operator.value!r} requires exactly one value")
        if operator in _SET_VALUES and not values:
            raise ValueError(f"set-based operator {operator.value!r} requires at least one value")
        if operator in _NO_VALUES and values:
            raise ValueError(f"values must be empty for operator {operator.value!r}")
        for value in values:
            _validate_value(value)

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Tell whether a set of labels satisfies this requirement."""
        labels = labels or {}
        present = self.key in labels
        if self.operator in (Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.IN):
            return present and labels[self.key] in self.values
        if self.operator in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return not present or labels[self.key] not in self.values
        if self.operator is Operator.EXISTS:
            return present
        return not present

    def __str__(self) -> str:
        if self.operator is Operator.EXISTS:
            return self.key
        if self.operator is Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator in _SET_VALUES:
            return f"{self.key} {self.operator.value} ({','.join(sorted(self.values))})"
        return f"{self.key}{self.operator.value}{self.values[0]}"


@dataclass(frozen=True)
class Selector:
    """A conjunction of label requirements, kept in key order."""

    requirements: tuple[Requirement, ...] = ()

    def add(self, *args: Requirement) -> Selector:
        """Return a new selector with the given requirements added."""
        combined: Iterable[Requirement] = (*self.requirements, *args)
        return Selector(tuple(sorted(combined, key=lambda r: r.key)))

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Tell whether every requirement holds for the given labels."""
        return all(requirement.matches(labels) for requirement in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(requirement) for requirement in self.requirements)