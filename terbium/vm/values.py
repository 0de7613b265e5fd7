"""
Runtime values of the Terbium virtual machine.

Terbium values map onto Python objects:

    null      None
    bool      bool
    int       int (arbitrary precision)
    float     float
    string    str
    list      list (mutable, shared by reference)
    range     range (half-open, step 1)
    function  FunctionPrototype
    builtin   BuiltinFunction
    iterator  a Python iterator, only ever seen by FOR_ITER

Author: xwest
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..builtins import BuiltinSpec
from ..bytecode.module import FunctionPrototype


@dataclass(frozen=True)
class BuiltinFunction:
    """A host function callable from Terbium code."""
    spec: BuiltinSpec
    implementation: Callable[[Any, List[Any]], Any]

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def arity(self) -> Optional[int]:
        return self.spec.arity

    def __str__(self) -> str:
        return f"<builtin {self.spec.name}>"


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def type_name(value: Any) -> str:
    """Terbium type name of a runtime value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    if isinstance(value, range):
        return "range"
    if isinstance(value, FunctionPrototype):
        return "function"
    if isinstance(value, BuiltinFunction):
        return "builtin"
    return "iterator"


def format_float(value: float) -> str:
    if value != value:
        return "nan"
    if value in (float("inf"), float("-inf")):
        return "inf" if value > 0 else "-inf"
    return repr(value)


def format_value(value: Any, nested: bool = False) -> str:
    """
    Display form of a value, as produced by print and str.

    Strings print without quotes at the top level and quoted inside lists.
    Lists are walked with an explicit stack, so nesting depth is unbounded;
    a list that is already being printed shows as [...].
    """
    if not isinstance(value, list):
        return _format_scalar(value, nested)

    parts = ["["]
    active = {id(value)}
    # Each entry is [list, index of the next element]
    stack = [[value, 0]]
    while stack:
        frame = stack[-1]
        current, index = frame
        if index >= len(current):
            parts.append("]")
            active.discard(id(current))
            stack.pop()
            continue

        frame[1] = index + 1
        if index > 0:
            parts.append(", ")
        item = current[index]
        if not isinstance(item, list):
            parts.append(_format_scalar(item, True))
        elif id(item) in active:
            parts.append("[...]")
        else:
            active.add(id(item))
            parts.append("[")
            stack.append([item, 0])
    return "".join(parts)


def _format_scalar(value: Any, nested: bool) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return _quote(value) if nested else value
    if isinstance(value, range):
        return f"{value.start}..{value.stop}"
    if isinstance(value, FunctionPrototype):
        return f"<function {value.name}>"
    if isinstance(value, BuiltinFunction):
        return str(value)
    return "<iterator>"


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
    return f'"{escaped}"'


def values_equal(a: Any, b: Any) -> bool:
    """
    Equality as seen by `==`.

    Values of different kinds are never equal; int and float are both
    numbers and compare numerically. Lists compare element-wise using a work
    stack; a pair of lists met again while comparing is taken as equal, so
    cyclic lists terminate.
    """
    pending = [(a, b)]
    compared = set()
    while pending:
        x, y = pending.pop()
        if is_number(x) and is_number(y):
            if x != y:
                return False
        elif type(x) is not type(y):
            return False
        elif isinstance(x, list):
            key = (id(x), id(y))
            if key in compared:
                continue
            compared.add(key)
            if len(x) != len(y):
                return False
            pending.extend(zip(reversed(x), reversed(y)))
        elif isinstance(x, (FunctionPrototype, BuiltinFunction)):
            if not (x is y or x == y):
                return False
        elif x != y:
            return False
    return True
