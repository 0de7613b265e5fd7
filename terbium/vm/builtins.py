"""
Builtin function implementations.

Each implementation receives the running VirtualMachine and the argument
list (already checked against the builtin's arity) and returns a value.

Author: xwest
"""

from typing import Any, Callable, Dict, List, Tuple

from ..builtins import BUILTINS
from .errors import (
    create_type_error, create_invalid_operation_error, create_operand_type_error
)
from .values import BuiltinFunction, format_value, is_number, type_name


def builtin_print(vm, args: List[Any]) -> None:
    vm.write(" ".join(format_value(arg) for arg in args))
    return None


def builtin_len(vm, args: List[Any]) -> int:
    (value,) = args
    if isinstance(value, (str, list, range)):
        return len(value)
    raise create_type_error(f"len() of a '{type_name(value)}' value")


def builtin_push(vm, args: List[Any]) -> None:
    target, value = args
    if not isinstance(target, list):
        raise create_type_error(f"push() needs a list, got '{type_name(target)}'")
    target.append(value)
    return None


def builtin_pop(vm, args: List[Any]) -> Any:
    (target,) = args
    if not isinstance(target, list):
        raise create_type_error(f"pop() needs a list, got '{type_name(target)}'")
    if not target:
        raise create_invalid_operation_error("pop() from an empty list")
    return target.pop()


def builtin_str(vm, args: List[Any]) -> str:
    return format_value(args[0])


def builtin_int(vm, args: List[Any]) -> int:
    (value,) = args
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise create_invalid_operation_error(f"cannot convert {format_value(value)} to int")
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip().replace("_", ""), 10)
        except ValueError:
            raise create_invalid_operation_error(f"invalid integer literal: {value!r}") from None
    raise create_type_error(f"cannot convert '{type_name(value)}' to int")


def builtin_float(vm, args: List[Any]) -> float:
    (value,) = args
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if is_number(value):
        try:
            return float(value)
        except OverflowError:
            raise create_invalid_operation_error("integer too large to convert to float") from None
    if isinstance(value, str):
        try:
            return float(value.strip().replace("_", ""))
        except ValueError:
            raise create_invalid_operation_error(f"invalid float literal: {value!r}") from None
    raise create_type_error(f"cannot convert '{type_name(value)}' to float")


def builtin_type(vm, args: List[Any]) -> str:
    return type_name(args[0])


def builtin_abs(vm, args: List[Any]) -> Any:
    (value,) = args
    if not is_number(value):
        raise create_operand_type_error("abs", value)
    return abs(value)


IMPLEMENTATIONS: Dict[str, Callable[[Any, List[Any]], Any]] = {
    "print": builtin_print,
    "len": builtin_len,
    "push": builtin_push,
    "pop": builtin_pop,
    "str": builtin_str,
    "int": builtin_int,
    "float": builtin_float,
    "type": builtin_type,
    "abs": builtin_abs,
}


def create_builtins() -> Tuple[BuiltinFunction, ...]:
    """Builtin values in namespace order, as indexed by LOAD_BUILTIN."""
    missing = [spec.name for spec in BUILTINS if spec.name not in IMPLEMENTATIONS]
    if missing:
        raise NotImplementedError(f"builtins without an implementation: {missing}")
    return tuple(BuiltinFunction(spec, IMPLEMENTATIONS[spec.name]) for spec in BUILTINS)
