"""
Test suite for the Terbium parser.

Tests cover:
- Operator precedence and associativity
- Blocks, conditionals and loops as expressions
- Function declarations and function expressions
- Syntax error reporting and recovery

Author: xwest
"""

import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from terbium.config import CompilerConfig
from terbium.diagnostics import Stage
from terbium.lexer.lexer import tokenize_string
from terbium.parser.parser import Parser
from terbium.parser.ast_nodes import (
    Assignment, BinaryOp, Block, BreakStatement, ContinueStatement,
    ErrorExpression, ExpressionStatement, ForLoop, FunctionCall, FunctionDecl,
    FunctionExpression, Identifier, IfExpression, IndexAccess, ListLiteral,
    Literal, LogicalOp, RangeExpression, ReturnStatement, UnaryOp,
    VariableDecl, WhileLoop, iter_nodes
)


class ParserTestCase(unittest.TestCase):

    def _parse_code(self, code: str, config: CompilerConfig = None):
        """Helper to parse a code snippet; returns (program, diagnostics)."""
        tokens, diagnostics = tokenize_string(code, "<test>")
        program = Parser(tokens, diagnostics, config).parse()
        return program, diagnostics

    def _parse_expression(self, code: str):
        """Helper returning the tail expression of an error-free program."""
        program, diagnostics = self._parse_code(code)
        self.assertEqual(len(diagnostics), 0, [str(d) for d in diagnostics])
        self.assertEqual(program.statements, [])
        self.assertIsNotNone(program.tail)
        return program.tail


class TestExpressionParsing(ParserTestCase):
    """Precedence and associativity of the operator table."""

    def test_factor_binds_tighter_than_term(self):
        expr = self._parse_expression("1 + 2 * 3")
        self.assertIsInstance(expr, BinaryOp)
        self.assertEqual(expr.operator, "+")
        self.assertIsInstance(expr.left, Literal)
        self.assertEqual(expr.right.operator, "*")

    def test_subtraction_is_left_associative(self):
        expr = self._parse_expression("10 - 4 - 3")
        self.assertEqual(expr.operator, "-")
        self.assertIsInstance(expr.left, BinaryOp)
        self.assertEqual(expr.right.value, 3)

    def test_power_is_right_associative(self):
        expr = self._parse_expression("2 ** 3 ** 2")
        self.assertEqual(expr.left.value, 2)
        self.assertIsInstance(expr.right, BinaryOp)
        self.assertEqual(expr.right.operator, "**")

    def test_power_binds_tighter_than_unary(self):
        expr = self._parse_expression("-2 ** 2")
        self.assertIsInstance(expr, UnaryOp)
        self.assertEqual(expr.operator, "-")
        self.assertIsInstance(expr.operand, BinaryOp)

    def test_assignment_is_right_associative(self):
        expr = self._parse_expression("a = b = 1")
        self.assertIsInstance(expr, Assignment)
        self.assertEqual(expr.target.name, "a")
        self.assertIsInstance(expr.value, Assignment)
        self.assertEqual(expr.value.target.name, "b")

    def test_compound_assignment(self):
        expr = self._parse_expression("total += n * 2")
        self.assertIsInstance(expr, Assignment)
        self.assertEqual(expr.operator, "+=")
        self.assertIsInstance(expr.value, BinaryOp)

    def test_logical_precedence(self):
        expr = self._parse_expression("a || b && c")
        self.assertIsInstance(expr, LogicalOp)
        self.assertEqual(expr.operator, "||")
        self.assertIsInstance(expr.right, LogicalOp)
        self.assertEqual(expr.right.operator, "&&")

    def test_comparison_binds_tighter_than_equality(self):
        expr = self._parse_expression("1 < 2 == true")
        self.assertEqual(expr.operator, "==")
        self.assertEqual(expr.left.operator, "<")

    def test_range_binds_looser_than_arithmetic(self):
        expr = self._parse_expression("0..n + 1")
        self.assertIsInstance(expr, RangeExpression)
        self.assertEqual(expr.start.value, 0)
        self.assertIsInstance(expr.end, BinaryOp)

    def test_bitwise_precedence(self):
        expr = self._parse_expression("1 | 2 ^ 3 & 4 << 1")
        self.assertEqual(expr.operator, "|")
        self.assertEqual(expr.right.operator, "^")
        self.assertEqual(expr.right.right.operator, "&")
        self.assertEqual(expr.right.right.right.operator, "<<")

    def test_grouping_overrides_precedence(self):
        expr = self._parse_expression("(1 + 2) * 3")
        self.assertEqual(expr.operator, "*")
        self.assertEqual(expr.left.operator, "+")

    def test_call_and_index_chain(self):
        expr = self._parse_expression("f(1, 2)[0]")
        self.assertIsInstance(expr, IndexAccess)
        self.assertIsInstance(expr.target, FunctionCall)
        self.assertEqual(len(expr.target.args), 2)

    def test_list_literal_with_trailing_comma(self):
        expr = self._parse_expression("[1, 2.5, \"three\",]")
        self.assertIsInstance(expr, ListLiteral)
        self.assertEqual([e.literal_type for e in expr.elements], ["integer", "float", "string"])

    def test_binary_span_covers_operands(self):
        expr = self._parse_expression("1 + 2")
        self.assertEqual(expr.span.start.column, 1)
        self.assertEqual(expr.span.end.column, 6)


class TestStatementParsing(ParserTestCase):
    """Declarations, blocks and control flow."""

    def test_program_tail(self):
        program, diagnostics = self._parse_code("let x = 1; x")
        self.assertEqual(len(diagnostics), 0)
        self.assertEqual(len(program.statements), 1)
        self.assertIsInstance(program.tail, Identifier)

    def test_program_without_tail(self):
        program, _ = self._parse_code("let x = 1; x;")
        self.assertEqual(len(program.statements), 2)
        self.assertIsNone(program.tail)

    def test_variable_declarations(self):
        program, diagnostics = self._parse_code("let a = 1; let mut b; const C = 3;")
        self.assertEqual(len(diagnostics), 0)
        a, b, c = program.statements
        self.assertFalse(a.is_mutable)
        self.assertTrue(b.is_mutable)
        self.assertIsNone(b.initializer)
        self.assertTrue(c.is_const)

    def test_block_tail(self):
        block = self._parse_expression("{ let x = 1; x }")
        self.assertIsInstance(block, Block)
        self.assertEqual(len(block.statements), 1)
        self.assertIsInstance(block.tail, Identifier)

    def test_block_like_statement_needs_no_semicolon(self):
        program, diagnostics = self._parse_code("if true { 1 } let y = 2;")
        self.assertEqual(len(diagnostics), 0)
        self.assertIsInstance(program.statements[0], ExpressionStatement)
        self.assertIsInstance(program.statements[0].expression, IfExpression)
        self.assertIsInstance(program.statements[1], VariableDecl)

    def test_block_statement_is_not_continued_by_operator(self):
        program, diagnostics = self._parse_code("{ 1 } - 1")
        self.assertEqual(len(diagnostics), 0)
        self.assertIsInstance(program.statements[0].expression, Block)
        self.assertIsInstance(program.tail, UnaryOp)

    def test_else_if_chain(self):
        expr = self._parse_expression("if a { 1 } else if b { 2 } else { 3 }")
        self.assertIsInstance(expr, IfExpression)
        self.assertIsInstance(expr.else_branch, IfExpression)
        self.assertIsInstance(expr.else_branch.else_branch, Block)

    def test_while_loop(self):
        expr = self._parse_expression("while i < 10 { i += 1; }")
        self.assertIsInstance(expr, WhileLoop)
        self.assertEqual(expr.condition.operator, "<")

    def test_for_loop(self):
        expr = self._parse_expression("for i in 0..10 { i }")
        self.assertIsInstance(expr, ForLoop)
        self.assertEqual(expr.variable, "i")
        self.assertIsInstance(expr.iterable, RangeExpression)

    def test_break_and_continue_before_brace(self):
        loop = self._parse_expression("while true { if x { continue } break }")
        self.assertIsInstance(loop.body.statements[0].expression.then_branch.statements[0], ContinueStatement)
        self.assertIsInstance(loop.body.statements[1], BreakStatement)

    def test_function_declaration(self):
        program, diagnostics = self._parse_code("func add(a, mut b) { a + b }")
        self.assertEqual(len(diagnostics), 0)
        decl = program.statements[0]
        self.assertIsInstance(decl, FunctionDecl)
        self.assertEqual(decl.function.name, "add")
        self.assertEqual([p.name for p in decl.function.params], ["a", "b"])
        self.assertFalse(decl.function.params[0].is_mutable)
        self.assertTrue(decl.function.params[1].is_mutable)
        self.assertIsInstance(decl.function.body.tail, BinaryOp)

    def test_function_expression(self):
        program, diagnostics = self._parse_code("let f = func(x) { x * 2 }; f(4)")
        self.assertEqual(len(diagnostics), 0)
        initializer = program.statements[0].initializer
        self.assertIsInstance(initializer, FunctionExpression)
        self.assertIsNone(initializer.name)
        self.assertIsInstance(program.tail, FunctionCall)

    def test_return_statements(self):
        program, diagnostics = self._parse_code("func f() { return; } func g() { return 1 }")
        self.assertEqual(len(diagnostics), 0)
        first = program.statements[0].function.body.statements[0]
        second = program.statements[1].function.body.statements[0]
        self.assertIsInstance(first, ReturnStatement)
        self.assertIsNone(first.value)
        self.assertEqual(second.value.value, 1)

    def test_empty_statement(self):
        program, diagnostics = self._parse_code(";;")
        self.assertEqual(len(diagnostics), 0)
        self.assertEqual(len(program.statements), 2)

    def test_parent_links(self):
        program, _ = self._parse_code("let x = 1 + 2;")
        for node in iter_nodes(program):
            for child in node.children():
                self.assertIs(child.parent, node)

    def test_token_list_must_end_with_eof(self):
        with self.assertRaises(ValueError):
            Parser([])


class TestParserErrors(ParserTestCase):
    """Syntax errors are reported once and parsing continues."""

    def _codes(self, code: str, config: CompilerConfig = None):
        _, diagnostics = self._parse_code(code, config)
        return [d.code for d in diagnostics]

    def test_invalid_expression(self):
        program, diagnostics = self._parse_code("let x = 1 + ;")
        self.assertEqual([d.code for d in diagnostics], ["P005"])
        self.assertEqual(diagnostics.errors[0].stage, Stage.PARSER)
        self.assertIsInstance(program.statements[0].initializer, ErrorExpression)

    def test_recovery_reports_each_error(self):
        code = """
        let a = ;
        let b = 1 + ;
        let c = 3;
        """
        program, diagnostics = self._parse_code(code)
        self.assertEqual([d.code for d in diagnostics], ["P005", "P005"])
        self.assertEqual(len(program.statements), 3)
        self.assertEqual(program.statements[2].name, "c")

    def test_missing_semicolon(self):
        program, diagnostics = self._parse_code("let x = 1\nlet y = 2;")
        self.assertEqual([d.code for d in diagnostics], ["P003"])
        self.assertEqual(diagnostics.errors[0].location.line, 2)
        self.assertEqual([s.name for s in program.statements], ["x", "y"])

    def test_missing_semicolon_between_expressions(self):
        self.assertEqual(self._codes("1 2"), ["P003"])

    def test_unclosed_delimiter(self):
        self.assertEqual(self._codes("(1 + 2;"), ["P004"])

    def test_invalid_assignment_target(self):
        self.assertEqual(self._codes("1 = 2;"), ["P006"])
        self.assertEqual(self._codes("f() = 2;"), ["P006"])

    def test_index_assignment_is_valid(self):
        self.assertEqual(self._codes("xs[0] = 2;"), [])

    def test_const_requires_initializer(self):
        self.assertEqual(self._codes("const x;"), ["P001"])

    def test_unexpected_end_of_input(self):
        self.assertEqual(self._codes("func f("), ["P010"])

    def test_nesting_limit(self):
        config = CompilerConfig(max_nesting_depth=10)
        self.assertEqual(self._codes("(" * 5 + "1" + ")" * 5, config), [])
        self.assertEqual(self._codes("(" * 50 + "1" + ")" * 50, config), ["P011"])

    def test_tree_height_limit(self):
        config = CompilerConfig(max_nesting_depth=10)
        self.assertEqual(self._codes(" + ".join(["1"] * 30), config), ["P011"])

    def test_flat_chain_is_reported_as_too_long(self):
        self.assertEqual(self._codes(" + ".join(["1"] * 100)), [])
        _, diagnostics = self._parse_code(" + ".join(["1"] * 101))
        (error,) = diagnostics.errors
        self.assertEqual(error.code, "P011")
        self.assertIn("too long", error.message)
        self.assertNotIn("nesting", error.message)

    def test_nesting_message(self):
        config = CompilerConfig(max_nesting_depth=10)
        _, diagnostics = self._parse_code("(" * 50 + "1" + ")" * 50, config)
        self.assertIn("nesting exceeds the limit of 10", diagnostics.errors[0].message)

    def test_lexical_error_suppresses_parse_errors(self):
        _, diagnostics = self._parse_code('let a = "unterminated\nlet b = 1 + ;')
        self.assertEqual([d.code for d in diagnostics], ["L002", "P005"])

    def test_invalid_character_is_not_reported_twice(self):
        _, diagnostics = self._parse_code("let x = 1 @ 2;")
        self.assertEqual([d.code for d in diagnostics], ["L001"])

    def test_reserved_word_as_name(self):
        _, diagnostics = self._parse_code("let class = 1;")
        self.assertEqual([d.code for d in diagnostics], ["P001"])
        self.assertIn("'class' is a reserved word; choose another name", diagnostics.errors[0].suggestions)

    def test_reserved_word_as_expression(self):
        for word in ("match", "with", "where"):
            with self.subTest(word=word):
                self.assertEqual(self._codes(f"{word};"), ["P005"])

    def test_reserved_punctuation_is_unexpected(self):
        for code in ("let x = a.b;", "a::b;", "a?;"):
            with self.subTest(code=code):
                _, diagnostics = self._parse_code(code)
                self.assertEqual([d.code for d in diagnostics], ["P001"])
                self.assertEqual(diagnostics.errors[0].stage, Stage.PARSER)


if __name__ == '__main__':
    unittest.main()
