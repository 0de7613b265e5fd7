"""
Semantic analysis error handling for Terbium.

Provides error reporting for scope resolution, mutability and control flow
checks performed by the semantic analyzer.

Author: xwest
"""

from typing import Optional, List

from ..diagnostics import Diagnostic, Severity, Stage
from ..lexer.tokens import SourceSpan
from ..parser.ast_nodes import ASTNode


class SemanticError(Exception):
    """
    Exception raised when semantic analysis finds an error.

    Contains detailed diagnostic information for error reporting. The
    analyzer records it and continues with the next construct.
    """

    def __init__(
        self,
        message: str,
        span: SourceSpan,
        node: Optional[ASTNode] = None,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        related_spans: Optional[List[SourceSpan]] = None,
        severity: Severity = Severity.ERROR
    ):
        super().__init__(message)
        self.diagnostic = Diagnostic(
            severity=severity,
            span=span,
            message=message,
            stage=Stage.ANALYZER,
            code=code,
            help_text=help_text,
            suggestions=tuple(suggestions) if suggestions else None,
        )
        self.node = node
        self.related_spans = related_spans or []

    def __str__(self) -> str:
        result = str(self.diagnostic)

        # Add related locations if any
        if self.related_spans:
            result += "\nRelated locations:\n"
            for span in self.related_spans:
                result += f"  --> {span}\n"

        return result


class SemanticWarning(SemanticError):
    """
    Represents a semantic warning that doesn't stop compilation.
    """

    def __init__(self, message: str, span: SourceSpan, **kwargs):
        super().__init__(message, span, severity=Severity.WARNING, **kwargs)


# Common semantic error codes
SEMANTIC_ERROR_CODES = {
    # Scope and binding errors
    "S010": "Undefined symbol",
    "S011": "Symbol redefinition",
    "S012": "Use before declaration",
    "S013": "Assignment to immutable binding",
    "S014": "Capture of enclosing function local",

    # Function errors
    "S052": "Duplicate parameter name",

    # Control flow errors
    "S060": "Unreachable code",
    "S061": "Unused variable",
    "S062": "Invalid break/continue",
    "S064": "Return outside function",

    "S070": "Nesting too deep",
}


def create_undefined_symbol_error(
    symbol: str,
    span: SourceSpan,
    node: Optional[ASTNode] = None,
    similar_names: Optional[List[str]] = None
) -> SemanticError:
    """Create an undefined symbol error."""
    suggestions = []
    if similar_names:
        suggestions.extend([f"Did you mean '{name}'?" for name in similar_names[:3]])

    suggestions.extend([
        f"Declare '{symbol}' before using it",
        "Check for typos in the symbol name",
    ])

    return SemanticError(
        message=f"Undefined symbol: '{symbol}'",
        span=span,
        node=node,
        code="S010",
        help_text=f"The symbol '{symbol}' is not defined in the current scope.",
        suggestions=suggestions
    )


def create_redefinition_error(symbol: str, span: SourceSpan, previous: SourceSpan,
                              is_parameter: bool = False) -> SemanticError:
    if is_parameter:
        return SemanticError(
            message=f"Duplicate parameter name '{symbol}'",
            span=span,
            code="S052",
            related_spans=[previous]
        )
    return SemanticError(
        message=f"Symbol '{symbol}' is already defined in this scope",
        span=span,
        code="S011",
        help_text=f"'{symbol}' was first declared at {previous}.",
        suggestions=["Rename one of the declarations", "Declare the second one in a nested block"],
        related_spans=[previous]
    )


def create_use_before_declaration_error(symbol: str, span: SourceSpan, declared_at: SourceSpan) -> SemanticError:
    return SemanticError(
        message=f"Cannot use '{symbol}' before its declaration",
        span=span,
        code="S012",
        help_text=f"'{symbol}' is declared later in this scope, at {declared_at}.",
        suggestions=[f"Move the declaration of '{symbol}' above this use"],
        related_spans=[declared_at]
    )


def create_immutable_assignment_error(symbol: str, kind: str, span: SourceSpan,
                                      declared_at: Optional[SourceSpan]) -> SemanticError:
    suggestions = []
    if kind in ("variable", "parameter"):
        suggestions.append(f"Declare it as 'mut {symbol}' to allow reassignment")
    return SemanticError(
        message=f"Cannot assign twice to immutable {kind} '{symbol}'",
        span=span,
        code="S013",
        suggestions=suggestions,
        related_spans=[declared_at] if declared_at else None
    )


def create_capture_error(symbol: str, span: SourceSpan) -> SemanticError:
    return SemanticError(
        message=f"Cannot capture local variable '{symbol}' of an enclosing function",
        span=span,
        code="S014",
        help_text="Functions can only refer to their own locals, top-level bindings, "
                  "declared functions and builtins.",
        suggestions=[f"Pass '{symbol}' as a parameter"]
    )


def create_invalid_loop_control_error(keyword: str, span: SourceSpan) -> SemanticError:
    return SemanticError(
        message=f"'{keyword}' outside of a loop",
        span=span,
        code="S062",
        help_text=f"'{keyword}' can only be used inside a while or for loop of the same function."
    )


def create_return_outside_function_error(span: SourceSpan) -> SemanticError:
    return SemanticError(
        message="'return' outside of a function",
        span=span,
        code="S064",
        help_text="The program's result is the value of its final expression."
    )


def create_nesting_too_deep_error(limit: int, span: SourceSpan) -> SemanticError:
    return SemanticError(
        message=f"Program nesting exceeds the limit of {limit}",
        span=span,
        code="S070"
    )


def create_unreachable_code_warning(span: SourceSpan) -> SemanticWarning:
    return SemanticWarning(
        message="Unreachable code",
        span=span,
        code="S060",
        help_text="This code follows a return, break or continue and never runs."
    )


def create_unused_variable_warning(symbol: str, span: SourceSpan) -> SemanticWarning:
    return SemanticWarning(
        message=f"Unused variable '{symbol}'",
        span=span,
        code="S061",
        suggestions=[f"Prefix it with an underscore: '_{symbol}'"]
    )
