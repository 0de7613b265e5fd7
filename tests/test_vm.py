"""
Test suite for the Terbium virtual machine.

Tests cover:
- Arithmetic, comparison and logical operators
- Control flow, functions and recursion
- Lists, ranges, strings and builtins
- Runtime traps, call-depth limits and stack traces

Author: xwest
"""

import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from terbium.config import VMConfig
from terbium.pipeline import ExitCode, compile_source, run_source
from terbium.bytecode.module import BytecodeModule, Instruction
from terbium.bytecode.opcodes import Opcode
from terbium.vm.errors import InternalVMError, TrapKind, VMRuntimeError
from terbium.vm.machine import VirtualMachine


class VMTestCase(unittest.TestCase):

    def _run(self, code: str, config: VMConfig = None):
        """Helper to compile and run a snippet that must compile cleanly."""
        result = run_source(code, "<test>", vm_config=config)
        compiled = result.compile_result
        self.assertTrue(compiled.succeeded, [str(d) for d in compiled.errors])
        return result

    def _eval(self, code: str, config: VMConfig = None):
        result = self._run(code, config)
        self.assertIsNone(result.error, result.error and result.error.format())
        return result.value

    def _trap(self, code: str, kind: TrapKind, config: VMConfig = None) -> VMRuntimeError:
        result = self._run(code, config)
        self.assertIsNotNone(result.error, f"expected a {kind.value} trap, got {result.value!r}")
        self.assertEqual(result.error.kind, kind, result.error.format())
        self.assertEqual(result.exit_code, ExitCode.RUNTIME_ERROR)
        return result.error


class TestArithmetic(VMTestCase):

    def test_integer_arithmetic(self):
        self.assertEqual(self._eval("1 + 2 * 3"), 7)
        self.assertEqual(self._eval("(1 + 2) * 3"), 9)
        self.assertEqual(self._eval("10 - 4 - 3"), 3)
        self.assertEqual(self._eval("2 ** 3 ** 2"), 512)
        self.assertEqual(self._eval("-2 ** 2"), -4)

    def test_mixed_arithmetic_produces_float(self):
        value = self._eval("1 + 2.0")
        self.assertIsInstance(value, float)
        self.assertEqual(value, 3.0)
        self.assertEqual(self._eval("7.0 / 2"), 3.5)

    def test_integer_division_truncates_toward_zero(self):
        self.assertEqual(self._eval("7 / 2"), 3)
        self.assertEqual(self._eval("-7 / 2"), -3)
        self.assertEqual(self._eval("7 / -2"), -3)
        self.assertEqual(self._eval("-7 / -2"), 3)

    def test_modulo_takes_sign_of_dividend(self):
        self.assertEqual(self._eval("7 % 3"), 1)
        self.assertEqual(self._eval("-7 % 3"), -1)
        self.assertEqual(self._eval("7 % -3"), 1)
        self.assertEqual(self._eval("5.5 % 2"), 1.5)
        self.assertEqual(self._eval("-5.5 % 2"), -1.5)

    def test_power(self):
        self.assertEqual(self._eval("2 ** 100"), 2 ** 100)
        self.assertEqual(self._eval("2 ** -1"), 0.5)
        self.assertAlmostEqual(self._eval("2 ** 0.5"), 1.4142135623730951)

    def test_bitwise(self):
        self.assertEqual(self._eval("6 & 3"), 2)
        self.assertEqual(self._eval("6 | 3"), 7)
        self.assertEqual(self._eval("6 ^ 3"), 5)
        self.assertEqual(self._eval("~5"), -6)
        self.assertEqual(self._eval("1 << 10"), 1024)
        self.assertEqual(self._eval("-16 >> 2"), -4)

    def test_string_and_list_concatenation(self):
        self.assertEqual(self._eval('"ab" + "cd"'), "abcd")
        self.assertEqual(self._eval("[1] + [2, 3]"), [1, 2, 3])

    def test_comparisons(self):
        self.assertIs(self._eval("1 < 2.5"), True)
        self.assertIs(self._eval('"a" < "b"'), True)
        self.assertIs(self._eval("3 >= 3"), True)
        self.assertIs(self._eval("3 > 3"), False)

    def test_equality(self):
        self.assertIs(self._eval("1 == 1.0"), True)
        self.assertIs(self._eval("1 == true"), False)
        self.assertIs(self._eval('"1" == 1'), False)
        self.assertIs(self._eval("null == null"), True)
        self.assertIs(self._eval("[1, [2]] == [1.0, [2]]"), True)
        self.assertIs(self._eval("1 != 2"), True)

    def test_logical_operators(self):
        self.assertIs(self._eval("true && false"), False)
        self.assertIs(self._eval("false || true"), True)
        self.assertIs(self._eval("!(1 < 2)"), False)

    def test_logical_operators_short_circuit(self):
        self.assertIs(self._eval("false && 1 / 0 == 0"), False)
        self.assertIs(self._eval("true || 1 / 0 == 0"), True)


class TestControlFlow(VMTestCase):

    def test_if_expression(self):
        self.assertEqual(self._eval('if 1 < 2 { "yes" } else { "no" }'), "yes")
        self.assertEqual(self._eval("if false { 1 } else if true { 2 } else { 3 }"), 2)
        self.assertIsNone(self._eval("if false { 1 }"))

    def test_block_value(self):
        self.assertEqual(self._eval("let v = { let a = 2; a * 3 }; v"), 6)

    def test_shadowing(self):
        self.assertEqual(self._eval("let x = 1; let y = { let x = 2; x }; [x, y]"), [1, 2])

    def test_while_loop(self):
        code = """
        let mut i = 0;
        let r = while i < 3 { i += 1; };
        [r, i]
        """
        self.assertEqual(self._eval(code), [None, 3])

    def test_for_over_range_list_and_string(self):
        self.assertEqual(self._eval("let mut s = 0; for i in 0..5 { s += i; } s"), 10)
        self.assertEqual(self._eval("let mut s = 0; for x in [3, 4] { s += x; } s"), 7)
        self.assertEqual(self._eval('let mut s = ""; for c in "abc" { s = c + s; } s'), "cba")
        self.assertEqual(self._eval("let mut n = 0; for i in 5..0 { n += 1; } n"), 0)

    def test_break_and_continue(self):
        code = """
        let mut total = 0;
        for i in 0..10 {
            if i % 2 == 0 { continue; }
            if i > 7 { break; }
            total += i;
        }
        total
        """
        self.assertEqual(self._eval(code), 16)

    def test_break_from_nested_expression(self):
        code = """
        let mut n = 0;
        for x in 0..5 {
            n += 1 + { if x == 2 { break; } 0 };
        }
        n
        """
        self.assertEqual(self._eval(code), 2)

    def test_nested_loops(self):
        code = """
        let mut pairs = 0;
        let mut i = 0;
        while i < 4 {
            for j in 0..4 {
                if j == i { break }
                pairs += 1;
            }
            i += 1;
        }
        pairs
        """
        self.assertEqual(self._eval(code), 6)

    def test_program_without_tail_is_null(self):
        self.assertIsNone(self._eval("let x = 1;"))

    def test_condition_must_be_bool(self):
        self._trap("if 1 { 2 }", TrapKind.TYPE_ERROR)
        self._trap("let mut n = 3; while n { n -= 1; }", TrapKind.TYPE_ERROR)
        self._trap("1 && true", TrapKind.TYPE_ERROR)


class TestFunctions(VMTestCase):

    def test_recursion(self):
        code = "func fib(n) { if n < 2 { n } else { fib(n - 1) + fib(n - 2) } } fib(20)"
        self.assertEqual(self._eval(code), 6765)

    def test_functions_are_values(self):
        self.assertEqual(self._eval("let f = func(x) { x * 2 }; f(21)"), 42)
        code = "func apply(g, v) { g(v) } apply(func(x) { x + 1 }, 41)"
        self.assertEqual(self._eval(code), 42)

    def test_early_return(self):
        code = """
        func sign(n) {
            if n > 0 { return "pos"; }
            if n < 0 { return "neg" }
            "zero"
        }
        [sign(5), sign(-5), sign(0)]
        """
        self.assertEqual(self._eval(code), ["pos", "neg", "zero"])

    def test_return_inside_loop(self):
        code = """
        func find(xs, target) {
            let mut i = 0;
            for x in xs {
                if x == target { return i; }
                i += 1;
            }
            -1
        }
        [find([5, 6, 7], 7), find([5], 9)]
        """
        self.assertEqual(self._eval(code), [2, -1])

    def test_bare_return_is_null(self):
        self.assertIsNone(self._eval("func f() { return; } f()"))

    def test_functions_update_globals(self):
        code = """
        let mut counter = 0;
        func bump() { counter += 1; }
        bump();
        bump();
        counter
        """
        self.assertEqual(self._eval(code), 2)

    def test_global_read_before_initialization_is_null(self):
        self.assertIsNone(self._eval("func f() { g } let x = f(); let g = 1; x"))

    def test_mutable_parameters(self):
        self.assertEqual(self._eval("func inc(mut n) { n += 1; n } inc(41)"), 42)

    def test_deep_recursion_within_limit(self):
        code = "func down(n) { if n == 0 { 0 } else { down(n - 1) } } down(900)"
        self.assertEqual(self._eval(code), 0)

    def test_arity_mismatch(self):
        error = self._trap("func f(a) { a } f(1, 2)", TrapKind.ARITY_MISMATCH)
        self.assertIn("f()", error.message)
        self._trap("len(1, 2)", TrapKind.ARITY_MISMATCH)

    def test_not_callable(self):
        self._trap("let x = 1; x()", TrapKind.TYPE_ERROR)

    def test_stack_overflow(self):
        config = VMConfig(max_call_depth=50)
        error = self._trap("func f(n) { f(n + 1) } f(0)", TrapKind.STACK_OVERFLOW, config)
        self.assertEqual(len(error.trace), 51)
        self.assertEqual(error.trace[0].function, "f")
        self.assertEqual(error.trace[-1].function, "<main>")
        self.assertIn("more calls", error.format())


class TestCompositeValues(VMTestCase):

    def test_list_indexing_and_assignment(self):
        self.assertEqual(self._eval("let xs = [1, 2, 3]; xs[1] = 20; xs[2] += 1; xs"), [1, 20, 4])

    def test_lists_are_shared(self):
        self.assertEqual(self._eval("let a = [1]; let b = a; push(b, 2); a"), [1, 2])

    def test_index_assignment_value(self):
        self.assertEqual(self._eval("let xs = [0]; xs[0] = 9"), 9)

    def test_string_and_range_indexing(self):
        self.assertEqual(self._eval('"abc"[1]'), "b")
        self.assertEqual(self._eval("(0..10)[3]"), 3)

    def test_range_value(self):
        self.assertEqual(self._eval("0..3"), range(0, 3))

    def test_index_errors(self):
        self._trap("[1, 2][2]", TrapKind.INDEX_OUT_OF_RANGE)
        self._trap("[1][-1]", TrapKind.INDEX_OUT_OF_RANGE)
        self._trap('[1]["a"]', TrapKind.TYPE_ERROR)
        self._trap("5[0]", TrapKind.TYPE_ERROR)
        self._trap('let s = "abc"; s[0] = "x"', TrapKind.TYPE_ERROR)

    def test_iterating_non_iterable(self):
        self._trap("for x in 5 { x; }", TrapKind.TYPE_ERROR)

    def test_cyclic_list_equality(self):
        code = """
        let xs = []; push(xs, xs);
        let ys = []; push(ys, ys);
        [xs == xs, xs == ys, xs != ys]
        """
        self.assertEqual(self._eval(code), [True, True, False])

        code = "let a = [1]; push(a, a); let b = [2]; push(b, b); a == b"
        self.assertIs(self._eval(code), False)

    def test_deeply_nested_list_display(self):
        code = """
        let mut a = [];
        for _ in 0..5000 { a = [a]; }
        let text = str(a);
        [len(text), text[0], text[len(text) - 1]]
        """
        self.assertEqual(self._eval(code), [10002, "[", "]"])

    def test_deeply_nested_list_equality(self):
        code = """
        let mut a = [];
        let mut b = [];
        for _ in 0..5000 { a = [a]; b = [b]; }
        [a == b, a == [b], a != b]
        """
        self.assertEqual(self._eval(code), [True, False, True])


class TestTraps(VMTestCase):

    def test_division_by_zero(self):
        for code in ("1 / 0", "1 % 0", "1.0 / 0.0", "5 % 0.0", "0 ** -1"):
            with self.subTest(code=code):
                self._trap(code, TrapKind.DIVISION_BY_ZERO)

    def test_operand_types(self):
        error = self._trap('"a" + 1', TrapKind.TYPE_ERROR)
        self.assertIn("'string' and 'int'", error.message)
        self._trap("true + 1", TrapKind.TYPE_ERROR)
        self._trap("-\"a\"", TrapKind.TYPE_ERROR)
        self._trap("!1", TrapKind.TYPE_ERROR)
        self._trap("1.5 & 1", TrapKind.TYPE_ERROR)
        self._trap('1 < "a"', TrapKind.TYPE_ERROR)
        self._trap("1.5..3", TrapKind.TYPE_ERROR)

    def test_invalid_operations(self):
        self._trap("1 << -1", TrapKind.INVALID_OPERATION)
        self._trap("2.0 ** 10000", TrapKind.INVALID_OPERATION)
        self._trap("(-8.0) ** 0.5", TrapKind.INVALID_OPERATION)

    def test_trap_location(self):
        error = self._trap("let a = 1;\nlet b = a / 0;\nb", TrapKind.DIVISION_BY_ZERO)
        self.assertEqual(error.line, 2)
        self.assertIsNotNone(error.ip)
        self.assertIn("division by zero", error.format())
        self.assertIn("line 2", str(error))


class TestBuiltins(VMTestCase):

    def test_print_captures_output(self):
        result = self._run('print("a", 1, [1, "x"], null, 2.5, true); print()')
        self.assertIsNone(result.value)
        self.assertEqual(result.output, ['a 1 [1, "x"] null 2.5 true', ""])

    def test_print_to_sink(self):
        lines = []
        result = self._run('print("hello")', VMConfig(output=lines.append))
        self.assertEqual(lines, ["hello"])
        self.assertEqual(result.output, [])

    def test_len(self):
        self.assertEqual(self._eval('[len("héllo"), len([1, 2]), len(0..10)]'), [5, 2, 10])
        self._trap("len(5)", TrapKind.TYPE_ERROR)

    def test_push_and_pop(self):
        self.assertEqual(self._eval("let xs = []; push(xs, 1); push(xs, 2); [pop(xs), xs]"), [2, [1]])
        self._trap("pop([])", TrapKind.INVALID_OPERATION)
        self._trap("push(1, 2)", TrapKind.TYPE_ERROR)

    def test_conversions(self):
        self.assertEqual(self._eval("str(1.0)"), "1.0")
        self.assertEqual(self._eval("str(0..3)"), "0..3")
        self.assertEqual(self._eval('str(["a"])'), '["a"]')
        self.assertEqual(self._eval('int("42")'), 42)
        self.assertEqual(self._eval('int("4_2")'), 42)
        self.assertEqual(self._eval("int(-3.9)"), -3)
        self.assertEqual(self._eval("int(true)"), 1)
        self.assertEqual(self._eval('float("2.5")'), 2.5)
        self._trap('int("x")', TrapKind.INVALID_OPERATION)
        self._trap("float(10 ** 400)", TrapKind.INVALID_OPERATION)

    def test_type(self):
        code = '[type(null), type(1), type(1.0), type(""), type([]), type(0..1), type(print), type(func() {})]'
        self.assertEqual(self._eval(code),
                         ["null", "int", "float", "string", "list", "range", "builtin", "function"])

    def test_abs(self):
        self.assertEqual(self._eval("[abs(-3), abs(2.5)]"), [3, 2.5])

    def test_cyclic_list_display(self):
        self.assertEqual(self._eval("let a = [1]; push(a, a); str(a)"), "[1, [...]]")

    def test_function_display(self):
        self.assertEqual(self._eval("let g = func() { 1 }; str(g)"), "<function <lambda>>")


class TestMachine(unittest.TestCase):
    """Direct use of VirtualMachine."""

    def test_machine_can_run_twice(self):
        module = compile_source("let mut x = 1; x += 1; x").module
        vm = VirtualMachine(module)
        self.assertEqual(vm.run(), 2)
        self.assertEqual(vm.run(), 2)

    def test_return_from_main_is_internal_error(self):
        module = BytecodeModule((Instruction(Opcode.LOAD_NULL), Instruction(Opcode.RETURN)), ())
        with self.assertRaises(InternalVMError):
            VirtualMachine(module).run()

    def test_stack_underflow_is_internal_error(self):
        module = BytecodeModule((Instruction(Opcode.POP), Instruction(Opcode.HALT)), ())
        with self.assertRaises(InternalVMError):
            VirtualMachine(module).run()

    def test_config_validation(self):
        with self.assertRaises(ValueError):
            VMConfig(max_call_depth=0)


if __name__ == '__main__':
    unittest.main()
