"""
Builtin function signatures.

The position of a builtin in BUILTINS is its index in the builtin
namespace: the analyzer binds builtin names to it and the LOAD_BUILTIN
instruction carries it. Reordering this table changes the bytecode format.
Implementations live in terbium.vm.builtins.

Author: xwest
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class BuiltinSpec:
    name: str
    arity: Optional[int]  # None for variadic
    doc: str = ""


BUILTINS = (
    BuiltinSpec("print", None, "Write the values, separated by spaces, as one line of output"),
    BuiltinSpec("len", 1, "Length of a string, list or range"),
    BuiltinSpec("push", 2, "Append a value to a list"),
    BuiltinSpec("pop", 1, "Remove and return the last element of a list"),
    BuiltinSpec("str", 1, "Convert a value to its string form"),
    BuiltinSpec("int", 1, "Convert a number, boolean or numeric string to an integer"),
    BuiltinSpec("float", 1, "Convert a number, boolean or numeric string to a float"),
    BuiltinSpec("type", 1, "Name of the value's type"),
    BuiltinSpec("abs", 1, "Absolute value of a number"),
)

BUILTIN_INDEX: Dict[str, int] = {spec.name: index for index, spec in enumerate(BUILTINS)}
