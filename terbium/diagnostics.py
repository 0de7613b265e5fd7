"""
Diagnostics shared by every compiler stage.

A single DiagnosticCollector is created per compilation unit and handed
explicitly to the lexer, parser and analyzer. Stages only ever append to it;
the pipeline inspects it afterwards to decide whether code generation may run.

Author: xwest
"""

import logging
from enum import Enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence

if TYPE_CHECKING:
    from .lexer.tokens import SourceSpan

logger = logging.getLogger(__name__)


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


class Stage(Enum):
    """Pipeline stage a diagnostic originated from."""
    LEXER = "lexer"
    PARSER = "parser"
    ANALYZER = "analyzer"
    COMPILER = "compiler"


@dataclass(frozen=True)
class Diagnostic:
    """A single problem found in the source."""
    severity: Severity
    span: "SourceSpan"
    message: str
    stage: Stage
    code: Optional[str] = None
    help_text: Optional[str] = None
    suggestions: Optional[Sequence[str]] = None

    @property
    def location(self):
        return self.span.start

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        severity_prefix = self.severity.value.upper()
        code = f"[{self.code}]" if self.code else ""
        result = f"{severity_prefix}{code}: {self.message}\n"
        result += f"  --> {self.span.start}\n"

        if self.help_text:
            result += f"  help: {self.help_text}\n"

        if self.suggestions:
            result += "  suggestions:\n"
            for suggestion in self.suggestions:
                result += f"    - {suggestion}\n"

        return result


class DiagnosticCollector:
    """
    Append-only sink of diagnostics for one compilation unit.

    Insertion order is detection order.
    """

    def __init__(self):
        self._diagnostics: List[Diagnostic] = []

    def add(self, diagnostic: Diagnostic) -> Diagnostic:
        self._diagnostics.append(diagnostic)
        logger.debug("%s diagnostic from %s: %s",
                     diagnostic.severity.value, diagnostic.stage.value, diagnostic.message)
        return diagnostic

    def report(
        self,
        severity: Severity,
        span: "SourceSpan",
        message: str,
        stage: Stage,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[Sequence[str]] = None,
    ) -> Diagnostic:
        return self.add(Diagnostic(
            severity=severity,
            span=span,
            message=message,
            stage=stage,
            code=code,
            help_text=help_text,
            suggestions=tuple(suggestions) if suggestions else None,
        ))

    def error(self, span: "SourceSpan", message: str, stage: Stage, **kwargs) -> Diagnostic:
        return self.report(Severity.ERROR, span, message, stage, **kwargs)

    def warning(self, span: "SourceSpan", message: str, stage: Stage, **kwargs) -> Diagnostic:
        return self.report(Severity.WARNING, span, message, stage, **kwargs)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Snapshot of all diagnostics in detection order."""
        return list(self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.severity == Severity.WARNING]

    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._diagnostics)

    def from_stage(self, stage: Stage) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.stage == stage]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._diagnostics))

    def __len__(self) -> int:
        return len(self._diagnostics)

    def __bool__(self) -> bool:
        # An empty collector is still a valid collector
        return True
