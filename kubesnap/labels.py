"""Label selector syntax validation.

Accepts the same grammar the API server does::

    env=prod, tier!=cache, app in (web,api), !canary, release, replicas>2

The selector string itself is never rewritten; a valid selector is passed to
the API server verbatim.  Parsing exists only so an invalid selector can be
detected (and dropped with a warning) before any query is issued.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from kubesnap.errors import LabelSelectorParseError


class Operator(StrEnum):
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: Operator
    values: tuple[str, ...] = ()


_NAME_RE = re.compile(r"^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)$")
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

_SET_RE = re.compile(r"^(?P<key>[^\s=!<>(),]+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_CMP_RE = re.compile(r"^(?P<key>[^\s=!<>(),]+)\s*(?P<op>==|=|!=|<|>)\s*(?P<value>[^\s=!<>(),]*)$")
_NOT_EXISTS_RE = re.compile(r"^!\s*(?P<key>[^\s=!<>(),]+)$")
_EXISTS_RE = re.compile(r"^(?P<key>[^\s=!<>(),]+)$")

_CMP_OPERATORS = {
    "=": Operator.EQUALS,
    "==": Operator.DOUBLE_EQUALS,
    "!=": Operator.NOT_EQUALS,
    ">": Operator.GREATER_THAN,
    "<": Operator.LESS_THAN,
}


def _validate_key(selector: str, key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep:
        if not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.match(prefix):
            raise LabelSelectorParseError(selector, f"invalid label key prefix {prefix!r}")
    if not name or len(name) > 63 or not _NAME_RE.match(name):
        raise LabelSelectorParseError(selector, f"invalid label key {key!r}")


def _validate_value(selector: str, value: str) -> None:
    if value == "":
        return
    if len(value) > 63 or not _NAME_RE.match(value):
        raise LabelSelectorParseError(selector, f"invalid label value {value!r}")


def _split_requirements(selector: str) -> list[str]:
    """Split on commas that are not inside a parenthesised value set."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise LabelSelectorParseError(selector, "unbalanced ')'")
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if depth != 0:
        raise LabelSelectorParseError(selector, "unbalanced '('")
    parts.append("".join(current))
    return parts


def _parse_requirement(selector: str, text: str) -> Requirement:
    text = text.strip()
    if not text:
        raise LabelSelectorParseError(selector, "empty requirement")

    if match := _SET_RE.match(text):
        key = match["key"]
        _validate_key(selector, key)
        # "()" is a set holding only the empty value.
        values = tuple(v.strip() for v in match["values"].split(","))
        for value in values:
            _validate_value(selector, value)
        op = Operator.IN if match["op"] == "in" else Operator.NOT_IN
        return Requirement(key=key, operator=op, values=values)

    if match := _NOT_EXISTS_RE.match(text):
        _validate_key(selector, match["key"])
        return Requirement(key=match["key"], operator=Operator.DOES_NOT_EXIST)

    if match := _CMP_RE.match(text):
        key, value = match["key"], match["value"]
        _validate_key(selector, key)
        op = _CMP_OPERATORS[match["op"]]
        if op in (Operator.GREATER_THAN, Operator.LESS_THAN):
            if not re.fullmatch(r"-?[0-9]+", value):
                raise LabelSelectorParseError(selector, f"{key!r} requires an integer value")
        else:
            _validate_value(selector, value)
        return Requirement(key=key, operator=op, values=(value,))

    if match := _EXISTS_RE.match(text):
        _validate_key(selector, match["key"])
        return Requirement(key=match["key"], operator=Operator.EXISTS)

    raise LabelSelectorParseError(selector, f"unable to parse requirement {text!r}")


def parse_label_selector(selector: str) -> list[Requirement]:
    """Parse *selector* into its requirements.

    An empty or whitespace-only selector selects everything and parses to
    an empty list.

    Raises:
        LabelSelectorParseError: on any syntax or key/value validation error.
    """
    if not selector.strip():
        return []
    return [_parse_requirement(selector, part) for part in _split_requirements(selector)]
