"""
Test suite for the Terbium binary module format.

Tests cover:
- Encoding and decoding compiled programs
- Rejection of corrupt or inconsistent modules

Author: xwest
"""

import struct
import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from terbium.pipeline import compile_source
from terbium.bytecode.errors import BytecodeFormatError
from terbium.bytecode.module import BytecodeModule, FunctionPrototype, Instruction
from terbium.bytecode.opcodes import Opcode
from terbium.bytecode.serializer import MAGIC, encode_module, decode_module, validate_module
from terbium.vm.machine import VirtualMachine


def module_of(*instructions, constants=(), global_count=0):
    return BytecodeModule(tuple(instructions), tuple(constants), global_count)


class TestRoundTrip(unittest.TestCase):

    def test_compiled_program_round_trip(self):
        code = """
        func fib(n) { if n < 2 { n } else { fib(n - 1) + fib(n - 2) } }
        let greeting = "héllo ✓";
        let big = 123456789012345678901234567890;
        [fib(10), greeting, big, -7, 2.5, true, false, null]
        """
        compiled = compile_source(code)
        self.assertTrue(compiled.succeeded)

        data = encode_module(compiled.module)
        self.assertTrue(data.startswith(MAGIC))

        decoded = decode_module(data)
        self.assertEqual(decoded, compiled.module)
        self.assertEqual(
            VirtualMachine(decoded).run(),
            [55, "héllo ✓", 123456789012345678901234567890, -7, 2.5, True, False, None],
        )

    def test_constant_types_survive(self):
        module = module_of(
            Instruction(Opcode.HALT),
            constants=(1, 1.0, True, "1", -(2 ** 70), FunctionPrototype("f", 2, 3, 0)),
        )
        decoded = decode_module(encode_module(module))
        self.assertEqual([type(c) for c in decoded.constants],
                         [int, float, bool, str, int, FunctionPrototype])
        self.assertEqual(decoded, module)

    def test_encoding_is_deterministic(self):
        module = compile_source("let x = [1, 2]; x[0]").module
        self.assertEqual(encode_module(module), encode_module(module))

    def test_unencodable_constant(self):
        with self.assertRaises(TypeError):
            encode_module(module_of(Instruction(Opcode.HALT), constants=([1],)))

    def test_operand_out_of_range(self):
        module = module_of(Instruction(Opcode.LOAD_CONST, 2 ** 40), Instruction(Opcode.HALT))
        with self.assertRaises(ValueError):
            encode_module(module)


class TestDecodeErrors(unittest.TestCase):
    """Malformed input raises BytecodeFormatError."""

    def setUp(self):
        self.data = encode_module(compile_source("let x = 40; x + 2").module)

    def test_bad_magic(self):
        with self.assertRaises(BytecodeFormatError):
            decode_module(b"XXXX" + self.data[4:])

    def test_unsupported_version(self):
        data = self.data[:4] + struct.pack("<H", 99) + self.data[6:]
        with self.assertRaises(BytecodeFormatError):
            decode_module(data)

    def test_truncated_data(self):
        for cut in (3, 10, len(self.data) - 1):
            with self.subTest(cut=cut):
                with self.assertRaises(BytecodeFormatError):
                    decode_module(self.data[:cut])

    def test_trailing_data(self):
        with self.assertRaises(BytecodeFormatError):
            decode_module(self.data + b"\x00")

    def test_unknown_opcode(self):
        # The last instruction record is opcode u8, operand i32, line u32
        data = bytearray(self.data)
        data[-9] = 0xFF
        with self.assertRaises(BytecodeFormatError):
            decode_module(bytes(data))

    def test_unknown_constant_tag(self):
        module = module_of(Instruction(Opcode.HALT), constants=(7,))
        data = bytearray(encode_module(module))
        # Header (10 bytes) and constant count (4 bytes) precede the first tag
        data[14] = 0x2A
        with self.assertRaises(BytecodeFormatError):
            decode_module(bytes(data))

    def test_invalid_jump_target(self):
        module = module_of(Instruction(Opcode.JUMP, 5), Instruction(Opcode.HALT))
        with self.assertRaises(BytecodeFormatError):
            decode_module(encode_module(module))


class TestValidation(unittest.TestCase):
    """validate_module checks every cross reference."""

    def _assert_invalid(self, module):
        with self.assertRaises(BytecodeFormatError):
            validate_module(module)

    def test_valid_module(self):
        validate_module(module_of(Instruction(Opcode.LOAD_NULL), Instruction(Opcode.HALT)))

    def test_empty_module(self):
        self._assert_invalid(module_of())

    def test_constant_index(self):
        self._assert_invalid(module_of(Instruction(Opcode.LOAD_CONST, 0), Instruction(Opcode.HALT)))

    def test_global_slot(self):
        self._assert_invalid(module_of(
            Instruction(Opcode.LOAD_NULL), Instruction(Opcode.STORE_GLOBAL, 1), Instruction(Opcode.HALT),
            global_count=1,
        ))

    def test_builtin_index(self):
        self._assert_invalid(module_of(Instruction(Opcode.LOAD_BUILTIN, 99), Instruction(Opcode.HALT)))

    def test_negative_operand(self):
        self._assert_invalid(module_of(Instruction(Opcode.LOAD_LOCAL, -1), Instruction(Opcode.HALT)))

    def test_operand_on_operandless_opcode(self):
        self._assert_invalid(module_of(Instruction(Opcode.LOAD_NULL, 1), Instruction(Opcode.HALT)))

    def test_function_entry(self):
        self._assert_invalid(module_of(
            Instruction(Opcode.HALT), constants=(FunctionPrototype("f", 0, 0, 10),)
        ))


if __name__ == '__main__':
    unittest.main()
