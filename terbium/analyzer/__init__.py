"""
Terbium Semantic Analyzer Package

Implements the static checks run between parsing and code generation:
- Lexical scope construction and identifier resolution
- Declaration-before-use and duplicate declaration checks
- Mutability checks on assignment
- Loop and function context checks for break, continue and return
- Unused variable and unreachable code warnings

Author: xwest
"""

from .semantic_analyzer import SemanticAnalyzer, AnalysisResult, analyze_program
from .symbol_table import SymbolTable, Symbol, SymbolKind, Storage, Binding, Scope, ScopeKind
from .errors import SemanticError, SemanticWarning

__all__ = [
    # Main analyzer
    "SemanticAnalyzer", "AnalysisResult", "analyze_program",

    # Symbol management
    "SymbolTable", "Symbol", "SymbolKind", "Storage", "Binding", "Scope", "ScopeKind",

    # Error handling
    "SemanticError", "SemanticWarning",
]
