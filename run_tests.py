#!/usr/bin/env python3
"""
Main test runner for the Terbium compiler and VM.

Runs a short pipeline smoke test, then the unittest suites under tests/.

Author: xwest
"""

import sys
import os
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, project_root)


def run_pipeline_smoke_test() -> bool:
    """Compile and run a few programs through every stage."""

    print("🚀 Terbium Test Suite")
    print("=" * 60)

    from terbium.lexer.lexer import Lexer
    from terbium.parser.parser import Parser
    from terbium.analyzer.semantic_analyzer import SemanticAnalyzer
    from terbium.bytecode.compiler import BytecodeCompiler
    from terbium.bytecode.serializer import encode_module, decode_module
    from terbium.diagnostics import DiagnosticCollector
    from terbium.vm.machine import VirtualMachine

    print("✅ All compiler modules imported successfully")
    print()

    programs = [
        ("arithmetic", "1 + 2 * 3", 7),
        ("control flow", """
        func factorial(n) {
            if n <= 1 { 1 } else { n * factorial(n - 1) }
        }
        factorial(10)
        """, 3628800),
        ("loops", """
        let mut total = 0;
        for i in 0..10 {
            if i % 2 == 0 { continue; }
            total += i;
        }
        total
        """, 25),
    ]

    for name, code, expected in programs:
        print(f"  🔧 {name}...")
        diagnostics = DiagnosticCollector()
        tokens = Lexer(code, "<smoke>", diagnostics).tokenize()
        ast = Parser(tokens, diagnostics).parse()
        analysis = SemanticAnalyzer(diagnostics).analyze(ast)
        if analysis.has_errors():
            print(f"     ❌ {len(analysis.errors)} error(s)")
            for error in analysis.errors:
                print(f"        {error.message}")
            return False

        module = BytecodeCompiler().compile(analysis)
        module = decode_module(encode_module(module))
        value = VirtualMachine(module).run()
        if value != expected:
            print(f"     ❌ expected {expected!r}, got {value!r}")
            return False
        print(f"     ✅ {len(tokens)} tokens, {len(module.instructions)} instructions -> {value!r}")

    print()
    return True


def run_unit_tests() -> bool:
    print("Running unit tests...")
    print("-" * 60)
    suite = unittest.defaultTestLoader.discover(os.path.join(project_root, "tests"))
    result = unittest.TextTestRunner(verbosity=1).run(suite)
    return result.wasSuccessful()


if __name__ == "__main__":
    ok = run_pipeline_smoke_test() and run_unit_tests()
    print()
    print("✅ All tests passed" if ok else "❌ Some tests failed")
    sys.exit(0 if ok else 1)
