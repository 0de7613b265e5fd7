"""
Stack-based virtual machine for Terbium bytecode.

The machine keeps an explicit instruction pointer, a single operand stack
shared by all frames, and a frame stack for function calls. Each opcode is
handled by one method, looked up in a dispatch table built (and checked for
completeness) when the machine is constructed.

Author: xwest
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..bytecode.module import BytecodeModule, FunctionPrototype
from ..bytecode.opcodes import Opcode
from ..config import VMConfig
from .builtins import create_builtins
from .errors import (
    VMRuntimeError, InternalVMError, TraceEntry, create_type_error,
    create_operand_type_error, create_division_by_zero_error, create_arity_error,
    create_stack_overflow_error, create_index_error, create_invalid_operation_error
)
from .values import BuiltinFunction, is_integer, is_number, type_name, values_equal

logger = logging.getLogger(__name__)

_EXHAUSTED = object()

OPERATOR_SYMBOLS = {
    Opcode.ADD: "+", Opcode.SUB: "-", Opcode.MUL: "*", Opcode.DIV: "/",
    Opcode.MOD: "%", Opcode.POW: "**", Opcode.BIT_AND: "&", Opcode.BIT_OR: "|",
    Opcode.BIT_XOR: "^", Opcode.SHL: "<<", Opcode.SHR: ">>",
    Opcode.LT: "<", Opcode.LE: "<=", Opcode.GT: ">", Opcode.GE: ">=",
    Opcode.NEG: "-", Opcode.POS: "+", Opcode.NOT: "!", Opcode.BIT_NOT: "~",
}


@dataclass
class Frame:
    """Activation record of a function call (or of the main program)."""
    function: Optional[FunctionPrototype]
    locals: List[Any] = field(default_factory=list)
    return_ip: int = 0
    base: int = 0    # operand stack height when the frame was entered

    @property
    def name(self) -> str:
        return self.function.name if self.function is not None else "<main>"


class VirtualMachine:
    """
    Executes a BytecodeModule.

    A machine instance owns all of its state; separate instances can run
    side by side.
    """

    def __init__(self, module: BytecodeModule, config: Optional[VMConfig] = None):
        self.module = module
        self.config = config or VMConfig()
        self.builtins = create_builtins()
        self.output: List[str] = []

        self.ip = 0
        self.stack: List[Any] = []
        self.frames: List[Frame] = []
        self.globals: List[Any] = []
        self.halted = False
        self.result: Any = None
        self.instruction_count = 0

        self._dispatch: Dict[Opcode, Callable[[int], None]] = {
            Opcode.LOAD_CONST: self._op_load_const,
            Opcode.LOAD_NULL: self._op_load_null,
            Opcode.LOAD_LOCAL: self._op_load_local,
            Opcode.STORE_LOCAL: self._op_store_local,
            Opcode.LOAD_GLOBAL: self._op_load_global,
            Opcode.STORE_GLOBAL: self._op_store_global,
            Opcode.LOAD_BUILTIN: self._op_load_builtin,
            Opcode.POP: self._op_pop,
            Opcode.DUP: self._op_dup,
            Opcode.DUP2: self._op_dup2,
            Opcode.ADD: self._op_add,
            Opcode.SUB: self._arithmetic(lambda a, b: a - b),
            Opcode.MUL: self._arithmetic(lambda a, b: a * b),
            Opcode.DIV: self._op_div,
            Opcode.MOD: self._op_mod,
            Opcode.POW: self._op_pow,
            Opcode.BIT_AND: self._bitwise(lambda a, b: a & b),
            Opcode.BIT_OR: self._bitwise(lambda a, b: a | b),
            Opcode.BIT_XOR: self._bitwise(lambda a, b: a ^ b),
            Opcode.SHL: self._shift(lambda a, b: a << b),
            Opcode.SHR: self._shift(lambda a, b: a >> b),
            Opcode.EQ: self._op_eq,
            Opcode.NE: self._op_ne,
            Opcode.LT: self._comparison(lambda a, b: a < b),
            Opcode.LE: self._comparison(lambda a, b: a <= b),
            Opcode.GT: self._comparison(lambda a, b: a > b),
            Opcode.GE: self._comparison(lambda a, b: a >= b),
            Opcode.NEG: self._op_neg,
            Opcode.POS: self._op_pos,
            Opcode.NOT: self._op_not,
            Opcode.BIT_NOT: self._op_bit_not,
            Opcode.BUILD_LIST: self._op_build_list,
            Opcode.BUILD_RANGE: self._op_build_range,
            Opcode.INDEX_GET: self._op_index_get,
            Opcode.INDEX_SET: self._op_index_set,
            Opcode.JUMP: self._op_jump,
            Opcode.JUMP_IF_FALSE: self._op_jump_if_false,
            Opcode.GET_ITER: self._op_get_iter,
            Opcode.FOR_ITER: self._op_for_iter,
            Opcode.CALL: self._op_call,
            Opcode.RETURN: self._op_return,
            Opcode.HALT: self._op_halt,
        }
        missing = set(Opcode) - set(self._dispatch)
        if missing:
            raise NotImplementedError(f"no handler for opcodes: {sorted(op.name for op in missing)}")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def reset(self):
        self.ip = 0
        self.stack = []
        self.frames = [Frame(None)]
        self.globals = [None] * self.module.global_count
        self.halted = False
        self.result = None
        self.instruction_count = 0

    def run(self) -> Any:
        """
        Execute the module from its first instruction until HALT.

        Returns:
            The program result (the value of its final expression)

        Raises:
            VMRuntimeError: if the program traps
            InternalVMError: on a consistency failure
        """
        self.reset()
        instructions = self.module.instructions
        dispatch = self._dispatch

        while not self.halted:
            ip = self.ip
            if not 0 <= ip < len(instructions):
                raise InternalVMError("instruction pointer out of range", ip)
            instruction = instructions[ip]
            self.ip = ip + 1
            self.instruction_count += 1
            try:
                dispatch[instruction.opcode](instruction.operand)
            except VMRuntimeError as error:
                error.locate(ip, instruction.line, self.stack_trace(ip))
                logger.debug("Trap at ip %d (line %d): %s", ip, instruction.line, error.message)
                raise
            except OverflowError as e:
                error = create_invalid_operation_error(f"numeric overflow: {e}")
                error.locate(ip, instruction.line, self.stack_trace(ip))
                raise error from e

        logger.debug("Halted after %d instructions", self.instruction_count)
        return self.result

    def stack_trace(self, ip: int) -> List[TraceEntry]:
        """Active calls, innermost first."""
        trace = []
        for frame in reversed(self.frames):
            line = self.module.instructions[ip].line if 0 <= ip < len(self.module.instructions) else 0
            trace.append(TraceEntry(frame.name, ip, line))
            ip = frame.return_ip - 1
        return trace

    def write(self, text: str):
        """Output sink used by the print builtin."""
        if self.config.output is not None:
            self.config.output(text)
        else:
            self.output.append(text)

    # ------------------------------------------------------------------
    # Stack helpers
    # ------------------------------------------------------------------

    def _pop(self) -> Any:
        if len(self.stack) <= self.frames[-1].base:
            raise InternalVMError("operand stack underflow", self.ip - 1)
        return self.stack.pop()

    def _peek(self) -> Any:
        if len(self.stack) <= self.frames[-1].base:
            raise InternalVMError("operand stack underflow", self.ip - 1)
        return self.stack[-1]

    def _pop_pair(self):
        right = self._pop()
        left = self._pop()
        return left, right

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def _op_load_const(self, operand: int):
        if not 0 <= operand < len(self.module.constants):
            raise InternalVMError(f"constant index {operand} out of range", self.ip - 1)
        self.stack.append(self.module.constants[operand])

    def _op_load_null(self, operand: int):
        self.stack.append(None)

    def _local_slot(self, slot: int) -> int:
        if not 0 <= slot < len(self.frames[-1].locals):
            raise InternalVMError(f"local slot {slot} out of range", self.ip - 1)
        return slot

    def _op_load_local(self, operand: int):
        self.stack.append(self.frames[-1].locals[self._local_slot(operand)])

    def _op_store_local(self, operand: int):
        self.frames[-1].locals[self._local_slot(operand)] = self._pop()

    def _global_slot(self, slot: int) -> int:
        if not 0 <= slot < len(self.globals):
            raise InternalVMError(f"global slot {slot} out of range", self.ip - 1)
        return slot

    def _op_load_global(self, operand: int):
        self.stack.append(self.globals[self._global_slot(operand)])

    def _op_store_global(self, operand: int):
        self.globals[self._global_slot(operand)] = self._pop()

    def _op_load_builtin(self, operand: int):
        if not 0 <= operand < len(self.builtins):
            raise InternalVMError(f"builtin index {operand} out of range", self.ip - 1)
        self.stack.append(self.builtins[operand])

    def _op_pop(self, operand: int):
        self._pop()

    def _op_dup(self, operand: int):
        self.stack.append(self._peek())

    def _op_dup2(self, operand: int):
        left, right = self._pop_pair()
        self.stack.extend((left, right, left, right))

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _arithmetic(self, operation: Callable[[Any, Any], Any]) -> Callable[[int], None]:
        def handler(operand: int):
            left, right = self._pop_pair()
            if not (is_number(left) and is_number(right)):
                raise create_operand_type_error(OPERATOR_SYMBOLS[self._current_opcode()], left, right)
            self.stack.append(operation(left, right))
        return handler

    def _current_opcode(self) -> Opcode:
        return self.module.instructions[self.ip - 1].opcode

    def _op_add(self, operand: int):
        left, right = self._pop_pair()
        if is_number(left) and is_number(right):
            self.stack.append(left + right)
        elif isinstance(left, str) and isinstance(right, str):
            self.stack.append(left + right)
        elif isinstance(left, list) and isinstance(right, list):
            self.stack.append(left + right)
        else:
            raise create_operand_type_error("+", left, right)

    def _numeric_operands(self, symbol: str):
        left, right = self._pop_pair()
        if not (is_number(left) and is_number(right)):
            raise create_operand_type_error(symbol, left, right)
        if right == 0:
            raise create_division_by_zero_error(symbol)
        return left, right

    def _op_div(self, operand: int):
        left, right = self._numeric_operands("/")
        if is_integer(left) and is_integer(right):
            # Truncate toward zero
            quotient = abs(left) // abs(right)
            self.stack.append(quotient if (left < 0) == (right < 0) else -quotient)
        else:
            self.stack.append(left / right)

    def _op_mod(self, operand: int):
        left, right = self._numeric_operands("%")
        if is_integer(left) and is_integer(right):
            # Result takes the sign of the dividend
            remainder = abs(left) % abs(right)
            self.stack.append(-remainder if left < 0 else remainder)
        else:
            self.stack.append(math.fmod(left, right))

    def _op_pow(self, operand: int):
        base, exponent = self._pop_pair()
        if not (is_number(base) and is_number(exponent)):
            raise create_operand_type_error("**", base, exponent)
        if is_integer(base) and is_integer(exponent) and exponent >= 0:
            self.stack.append(base ** exponent)
            return
        if base == 0 and exponent < 0:
            raise create_division_by_zero_error("**")
        try:
            self.stack.append(math.pow(base, exponent))
        except ValueError:
            raise create_invalid_operation_error(
                f"{base} ** {exponent} has no real result"
            ) from None

    def _bitwise(self, operation: Callable[[int, int], int]) -> Callable[[int], None]:
        def handler(operand: int):
            left, right = self._pop_pair()
            if not (is_integer(left) and is_integer(right)):
                raise create_operand_type_error(OPERATOR_SYMBOLS[self._current_opcode()], left, right)
            self.stack.append(operation(left, right))
        return handler

    def _shift(self, operation: Callable[[int, int], int]) -> Callable[[int], None]:
        def handler(operand: int):
            left, right = self._pop_pair()
            symbol = OPERATOR_SYMBOLS[self._current_opcode()]
            if not (is_integer(left) and is_integer(right)):
                raise create_operand_type_error(symbol, left, right)
            if right < 0:
                raise create_invalid_operation_error(f"negative shift count {right}")
            self.stack.append(operation(left, right))
        return handler

    # ------------------------------------------------------------------
    # Comparison and unary operators
    # ------------------------------------------------------------------

    def _op_eq(self, operand: int):
        left, right = self._pop_pair()
        self.stack.append(values_equal(left, right))

    def _op_ne(self, operand: int):
        left, right = self._pop_pair()
        self.stack.append(not values_equal(left, right))

    def _comparison(self, operation: Callable[[Any, Any], bool]) -> Callable[[int], None]:
        def handler(operand: int):
            left, right = self._pop_pair()
            if not ((is_number(left) and is_number(right))
                    or (isinstance(left, str) and isinstance(right, str))):
                raise create_operand_type_error(OPERATOR_SYMBOLS[self._current_opcode()], left, right)
            self.stack.append(operation(left, right))
        return handler

    def _op_neg(self, operand: int):
        value = self._pop()
        if not is_number(value):
            raise create_operand_type_error("-", value)
        self.stack.append(-value)

    def _op_pos(self, operand: int):
        value = self._pop()
        if not is_number(value):
            raise create_operand_type_error("+", value)
        self.stack.append(value)

    def _op_not(self, operand: int):
        value = self._pop()
        if not isinstance(value, bool):
            raise create_operand_type_error("!", value)
        self.stack.append(not value)

    def _op_bit_not(self, operand: int):
        value = self._pop()
        if not is_integer(value):
            raise create_operand_type_error("~", value)
        self.stack.append(~value)

    # ------------------------------------------------------------------
    # Lists and ranges
    # ------------------------------------------------------------------

    def _op_build_list(self, operand: int):
        if operand < 0 or len(self.stack) - operand < self.frames[-1].base:
            raise InternalVMError("operand stack underflow", self.ip - 1)
        if operand == 0:
            self.stack.append([])
            return
        elements = self.stack[-operand:]
        del self.stack[-operand:]
        self.stack.append(elements)

    def _op_build_range(self, operand: int):
        start, end = self._pop_pair()
        if not (is_integer(start) and is_integer(end)):
            raise create_operand_type_error("..", start, end)
        self.stack.append(range(start, end))

    def _check_index(self, target: Any, index: Any) -> int:
        if not is_integer(index):
            raise create_type_error(f"index must be an int, not '{type_name(index)}'")
        if not 0 <= index < len(target):
            raise create_index_error(index, len(target))
        return index

    def _op_index_get(self, operand: int):
        target, index = self._pop_pair()
        if not isinstance(target, (list, str, range)):
            raise create_type_error(f"'{type_name(target)}' value is not indexable")
        self.stack.append(target[self._check_index(target, index)])

    def _op_index_set(self, operand: int):
        value = self._pop()
        target, index = self._pop_pair()
        if not isinstance(target, list):
            raise create_type_error(f"'{type_name(target)}' value does not support item assignment")
        target[self._check_index(target, index)] = value
        self.stack.append(value)

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------

    def _op_jump(self, operand: int):
        self.ip = operand

    def _op_jump_if_false(self, operand: int):
        condition = self._pop()
        if not isinstance(condition, bool):
            raise create_type_error(f"condition must be a bool, not '{type_name(condition)}'")
        if not condition:
            self.ip = operand

    def _op_get_iter(self, operand: int):
        iterable = self._pop()
        if not isinstance(iterable, (list, range, str)):
            raise create_type_error(f"'{type_name(iterable)}' value is not iterable")
        self.stack.append(iter(iterable))

    def _op_for_iter(self, operand: int):
        iterator = self._peek()
        value = next(iterator, _EXHAUSTED)
        if value is _EXHAUSTED:
            self._pop()
            self.ip = operand
        else:
            self.stack.append(value)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _op_call(self, operand: int):
        if operand < 0 or len(self.stack) - operand - 1 < self.frames[-1].base:
            raise InternalVMError("operand stack underflow", self.ip - 1)
        args = self.stack[len(self.stack) - operand:]
        callee = self.stack[-operand - 1]
        del self.stack[-operand - 1:]

        if isinstance(callee, FunctionPrototype):
            if len(args) != callee.arity:
                raise create_arity_error(callee.name, callee.arity, len(args))
            if len(self.frames) > self.config.max_call_depth:
                raise create_stack_overflow_error(self.config.max_call_depth)
            frame_locals = args + [None] * (callee.local_count - callee.arity)
            self.frames.append(Frame(callee, frame_locals, self.ip, len(self.stack)))
            self.ip = callee.entry

        elif isinstance(callee, BuiltinFunction):
            if callee.arity is not None and len(args) != callee.arity:
                raise create_arity_error(callee.name, callee.arity, len(args))
            self.stack.append(callee.implementation(self, args))

        else:
            raise create_type_error(f"'{type_name(callee)}' value is not callable")

    def _op_return(self, operand: int):
        value = self._pop()
        if len(self.frames) == 1:
            raise InternalVMError("return from the main program", self.ip - 1)
        frame = self.frames.pop()
        del self.stack[frame.base:]
        self.stack.append(value)
        self.ip = frame.return_ip

    def _op_halt(self, operand: int):
        self.result = self._pop()
        self.halted = True


def execute(module: BytecodeModule, config: Optional[VMConfig] = None) -> Any:
    """Convenience function: run a module on a fresh machine."""
    return VirtualMachine(module, config).run()
