"""
Test suite for the Terbium semantic analyzer.

Tests cover:
- Symbol resolution and scoping
- Slot allocation for globals and function frames
- Error detection and reporting
- Warnings for unused and unreachable code

Author: xwest
"""

import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from terbium.config import CompilerConfig
from terbium.diagnostics import Severity, Stage
from terbium.lexer.lexer import tokenize_string
from terbium.parser.parser import Parser
from terbium.analyzer.semantic_analyzer import SemanticAnalyzer
from terbium.analyzer.symbol_table import Storage, SymbolKind


class AnalyzerTestCase(unittest.TestCase):

    def _analyze_code(self, code: str, config: CompilerConfig = None, parse_config: CompilerConfig = None):
        """Helper to analyze a code snippet."""
        tokens, diagnostics = tokenize_string(code, "<test>")
        ast = Parser(tokens, diagnostics, parse_config or config).parse()
        self.assertFalse(diagnostics.has_errors(), [str(d) for d in diagnostics])
        return SemanticAnalyzer(diagnostics, config).analyze(ast)

    def _error_codes(self, code: str):
        return [d.code for d in self._analyze_code(code).errors]

    def _warning_codes(self, code: str, config: CompilerConfig = None):
        return [d.code for d in self._analyze_code(code, config).warnings]


class TestResolution(AnalyzerTestCase):
    """Identifier resolution and slot allocation."""

    def test_valid_program(self):
        code = """
        let mut total = 0;
        func add(a, b) { a + b }
        for i in 0..10 {
            total = add(total, i);
        }
        print(total);
        total
        """
        result = self._analyze_code(code)
        self.assertFalse(result.has_errors(), f"Unexpected errors: {result.errors}")
        self.assertFalse(result.has_warnings())

    def test_shadowing_in_nested_block(self):
        code = """
        let x = 1;
        {
            let x = 2;
            x
        }
        x
        """
        result = self._analyze_code(code)
        self.assertFalse(result.has_errors())

        program = result.ast
        outer_decl = program.statements[0]
        block = program.statements[1].expression
        inner_decl = block.statements[0]

        self.assertIs(block.tail.binding.symbol, inner_decl.symbol)
        self.assertIs(program.tail.binding.symbol, outer_decl.symbol)
        self.assertEqual(block.tail.binding.depth, 1)
        self.assertEqual(program.tail.binding.depth, 0)

    def test_global_slots(self):
        result = self._analyze_code("let a = 1; let b = 2; { let c = 3; c } a + b")
        self.assertEqual(result.global_count, 3)
        slots = [s.symbol.slot for s in result.ast.statements[:2]]
        self.assertEqual(slots, [0, 1])
        self.assertEqual(result.ast.statements[0].symbol.storage, Storage.GLOBAL)

    def test_function_frame_slots(self):
        code = """
        func f(a, b) {
            let c = a + b;
            { let d = c; d }
        }
        f(1, 2)
        """
        result = self._analyze_code(code)
        self.assertFalse(result.has_errors())

        decl = result.ast.statements[0]
        function = decl.function
        self.assertEqual(function.local_count, 4)
        self.assertEqual([p.symbol.slot for p in function.params], [0, 1])
        self.assertTrue(all(p.symbol.storage == Storage.LOCAL for p in function.params))

        self.assertEqual(decl.symbol.kind, SymbolKind.FUNCTION)
        self.assertEqual(decl.symbol.storage, Storage.FUNCTION)
        self.assertIsNone(decl.symbol.slot)
        self.assertEqual(result.global_count, 0)

    def test_builtin_binding(self):
        result = self._analyze_code("print(len([1, 2]))")
        call = result.ast.tail
        binding = call.function.binding
        self.assertEqual(binding.storage, Storage.BUILTIN)
        self.assertEqual(binding.depth, -1)
        self.assertEqual(binding.slot, 0)

    def test_functions_are_hoisted(self):
        code = """
        func is_even(n) { if n == 0 { true } else { is_odd(n - 1) } }
        func is_odd(n) { if n == 0 { false } else { is_even(n - 1) } }
        is_even(10)
        """
        self.assertEqual(self._error_codes(code), [])

    def test_function_reads_global_declared_later(self):
        self.assertEqual(self._error_codes("func f() { g } let g = 1; f()"), [])

    def test_loop_variable_is_scoped_to_loop(self):
        self.assertEqual(self._error_codes("for i in 0..3 { i; } i"), ["S010"])


class TestSemanticErrors(AnalyzerTestCase):
    """Static errors are reported and analysis continues."""

    def test_undefined_symbol(self):
        result = self._analyze_code("let count = 1; cout")
        self.assertEqual([d.code for d in result.errors], ["S010"])
        error = result.errors[0]
        self.assertEqual(error.stage, Stage.ANALYZER)
        self.assertIn("Did you mean 'count'?", error.suggestions)
        self.assertTrue(result.ast.tail.poisoned)
        self.assertIsNone(result.ast.tail.binding)

    def test_undefined_symbol_reported_once_per_function(self):
        self.assertEqual(self._error_codes("func f() { missing + missing * missing } f()"), ["S010"])
        self.assertEqual(self._error_codes("missing; func g() { missing } g()"), ["S010", "S010"])

    def test_analysis_continues_after_error(self):
        self.assertEqual(self._error_codes("undefined_a; let x = 1; x = 2;"), ["S010", "S013"])

    def test_redefinition(self):
        self.assertEqual(self._error_codes("let a = 1; let a = 2; a"), ["S011"])
        self.assertEqual(self._error_codes("func f() {} let f = 1; f"), ["S011"])

    def test_duplicate_parameter(self):
        self.assertEqual(self._error_codes("func f(a, a) { a } f(1, 2)"), ["S052"])

    def test_use_before_declaration(self):
        self.assertEqual(self._error_codes("x; let x = 1;"), ["S012"])

    def test_initializer_cannot_read_its_own_binding(self):
        self.assertEqual(self._error_codes("let x = 1; { let x = x + 1; x }"), ["S012"])

    def test_assignment_to_immutable(self):
        self.assertEqual(self._error_codes("let x = 1; x = 2;"), ["S013"])
        self.assertEqual(self._error_codes("const C = 1; C += 1;"), ["S013"])
        self.assertEqual(self._error_codes("func f(a) { a = 1; } f(0)"), ["S013"])
        self.assertEqual(self._error_codes("func f() {} f = 1;"), ["S013"])
        self.assertEqual(self._error_codes("print = 1;"), ["S013"])

    def test_assignment_to_mutable(self):
        self.assertEqual(self._error_codes("let mut x = 1; x += 2; func f(mut a) { a = 1; a } f(x)"), [])

    def test_capture_of_enclosing_local(self):
        code = """
        func outer() {
            let x = 1;
            func inner() { x }
            inner()
        }
        outer()
        """
        self.assertEqual(self._error_codes(code), ["S014"])

    def test_break_outside_loop(self):
        self.assertEqual(self._error_codes("break;"), ["S062"])
        self.assertEqual(self._error_codes("continue;"), ["S062"])

    def test_break_does_not_cross_function_boundary(self):
        self.assertEqual(self._error_codes("while true { func g() { break; } g() }"), ["S062"])

    def test_loop_control_inside_loops(self):
        self.assertEqual(self._error_codes("for i in 0..3 { if i == 1 { continue } break }"), [])

    def test_return_outside_function(self):
        self.assertEqual(self._error_codes("return 1;"), ["S064"])

    def test_analyzer_nesting_limit(self):
        code = "((((((((((((1 + 1) + 1) + 1) + 1) + 1) + 1) + 1) + 1) + 1) + 1) + 1) + 1)"
        result = self._analyze_code(
            code, config=CompilerConfig(max_nesting_depth=2), parse_config=CompilerConfig()
        )
        self.assertEqual([d.code for d in result.errors], ["S070"])


class TestSemanticWarnings(AnalyzerTestCase):
    """Warnings never block compilation."""

    def test_unused_local(self):
        code = "func f() { let unused = 1; let _ignored = 2; for i in 0..3 {} 0 } f()"
        result = self._analyze_code(code)
        self.assertFalse(result.has_errors())
        self.assertEqual([d.code for d in result.warnings], ["S061"])
        self.assertEqual(result.warnings[0].severity, Severity.WARNING)
        self.assertIn("unused", result.warnings[0].message)

    def test_unused_globals_are_not_reported(self):
        self.assertEqual(self._warning_codes("let never_read = 1;"), [])

    def test_unused_warning_can_be_disabled(self):
        code = "func f() { let unused = 1; 0 } f()"
        self.assertEqual(self._warning_codes(code, CompilerConfig(warn_unused=False)), [])

    def test_unreachable_code(self):
        code = "func f() { return 1; let x = 2; x } f()"
        self.assertEqual(self._warning_codes(code), ["S060"])

    def test_unreachable_reported_once_per_block(self):
        code = "while true { break; 1; 2; 3 }"
        self.assertEqual(self._warning_codes(code), ["S060"])


if __name__ == '__main__':
    unittest.main()
