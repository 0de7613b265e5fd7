"""
Instruction assembler with label resolution.

Jumps are emitted against Label placeholders. Once all code has been
emitted, resolve() rewrites every jump operand to the bound instruction
index. The assembler also tracks the static operand stack depth after each
emitted instruction and checks that every jump agrees with the depth at its
target label.

Author: xwest
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .errors import InternalCompilerError
from .module import Instruction, constant_key
from .opcodes import Opcode, OPCODE_INFO, stack_effect

logger = logging.getLogger(__name__)


class Label:
    """Placeholder for an instruction index that is not known yet."""

    def __init__(self, name: str = "L"):
        self.name = name
        self.position: Optional[int] = None
        self.depth: Optional[int] = None

    @property
    def is_bound(self) -> bool:
        return self.position is not None

    def __repr__(self) -> str:
        return f"Label({self.name}, {self.position})"


class Assembler:
    """
    Accumulates instructions and constants for one module.

    Instructions are appended in order; jump instructions carry a Label
    until resolve() is called.
    """

    def __init__(self):
        self.code: List[List[Any]] = []       # [opcode, operand (int or Label), line]
        self.constants: List[Any] = []
        self._constant_index: Dict[Tuple, int] = {}
        self.depth = 0
        self.max_depth = 0
        self.reachable = True
        self._label_count = 0

    def new_label(self, name: str = "L") -> Label:
        self._label_count += 1
        return Label(f"{name}{self._label_count}")

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    @property
    def position(self) -> int:
        return len(self.code)

    def emit(self, opcode: Opcode, operand: int = 0, line: int = 0) -> int:
        """Append a non-jump instruction and return its index."""
        info = OPCODE_INFO[opcode]
        if info.is_jump:
            raise InternalCompilerError(f"{opcode.name} must be emitted with emit_jump", line)
        if not info.has_operand and operand != 0:
            raise InternalCompilerError(f"{opcode.name} takes no operand", line)

        self.code.append([opcode, operand, line])
        self._adjust_depth(stack_effect(opcode, operand), line)
        if opcode in (Opcode.RETURN, Opcode.HALT):
            self.reachable = False
        return len(self.code) - 1

    def emit_jump(self, opcode: Opcode, label: Label, line: int = 0) -> int:
        """Append a jump to `label` and check the depth at the target."""
        if not OPCODE_INFO[opcode].is_jump:
            raise InternalCompilerError(f"{opcode.name} is not a jump", line)

        self.code.append([opcode, label, line])
        self._merge_depth(label, self.depth + stack_effect(opcode, jump=True), line)
        self._adjust_depth(stack_effect(opcode), line)
        if opcode == Opcode.JUMP:
            self.reachable = False
        return len(self.code) - 1

    def bind(self, label: Label, line: int = 0):
        """Bind a label to the next instruction index."""
        if label.is_bound:
            raise InternalCompilerError(f"label {label.name} bound twice", line)
        label.position = len(self.code)

        if self.reachable:
            self._merge_depth(label, self.depth, line)
        elif label.depth is not None:
            # Only reachable through jumps: continue at the depth they agreed on
            self.depth = label.depth
        else:
            label.depth = self.depth
        self.reachable = True

    def set_depth(self, depth: int):
        """Reset the tracked depth, e.g. at the start of a function body."""
        self.depth = depth
        self.reachable = True

    def add_constant(self, value: Any) -> int:
        """Add a value to the constant pool, reusing an equal entry."""
        key = constant_key(value)
        index = self._constant_index.get(key)
        if index is None:
            index = len(self.constants)
            self.constants.append(value)
            self._constant_index[key] = index
        return index

    def replace_constant(self, index: int, value: Any):
        """Swap a placeholder constant for its final value."""
        old_key = constant_key(self.constants[index])
        self._constant_index.pop(old_key, None)
        self.constants[index] = value
        self._constant_index[constant_key(value)] = index

    def _adjust_depth(self, effect: int, line: int):
        self.depth += effect
        if self.depth < 0:
            raise InternalCompilerError("operand stack underflow during code generation", line)
        self.max_depth = max(self.max_depth, self.depth)

    def _merge_depth(self, label: Label, depth: int, line: int):
        if label.depth is None:
            label.depth = depth
        elif label.depth != depth:
            raise InternalCompilerError(
                f"stack depth mismatch at {label.name}: {label.depth} != {depth}", line
            )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self) -> Tuple[Instruction, ...]:
        """Rewrite label operands to instruction indices."""
        instructions = []
        for index, (opcode, operand, line) in enumerate(self.code):
            if isinstance(operand, Label):
                if not operand.is_bound:
                    raise InternalCompilerError(
                        f"jump at {index} targets unbound label {operand.name}", line
                    )
                operand = operand.position
            instructions.append(Instruction(opcode, operand, line))

        logger.debug("Resolved %d instructions, max stack depth %d",
                     len(instructions), self.max_depth)
        return tuple(instructions)
