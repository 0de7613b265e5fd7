"""
Symbol table and scope management for Terbium semantic analysis.

Scopes live in an arena (a list indexed by scope id) and refer to their
parent by index, which keeps the tree free of reference cycles and lets
bindings name a scope by a plain integer.

Implements:
- Lexical scoping with shadowing across scopes
- Declared-but-uninitialized state for hoisted declarations
- Per-function slot allocation (the program counts as a function whose
  slots are the globals)
- Builtin namespace

Author: xwest
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any

from ..builtins import BUILTINS
from ..lexer.tokens import SourceSpan
from .errors import create_redefinition_error


class SymbolKind(Enum):
    """Types of symbols in the symbol table."""
    VARIABLE = "variable"
    CONSTANT = "constant"
    PARAMETER = "parameter"
    FUNCTION = "function"
    BUILTIN = "builtin"


class Storage(Enum):
    """Where the value of a binding lives at run time."""
    GLOBAL = "global"        # program-level slot
    LOCAL = "local"          # slot in the current call frame
    BUILTIN = "builtin"      # builtin namespace index
    FUNCTION = "function"    # declared function, loaded from the constant pool


@dataclass(eq=False)
class Symbol:
    """Represents a symbol in the symbol table."""
    name: str
    kind: SymbolKind
    storage: Storage
    span: Optional[SourceSpan]
    slot: Optional[int] = None
    is_mutable: bool = False
    scope_index: int = 0
    function_index: int = 0          # scope id of the owning function (0 = program)
    initialized: bool = True         # False until the `let` has been analyzed
    declaration: Any = None          # FunctionExpression for declared functions
    references: int = 0

    @property
    def is_assignable(self) -> bool:
        return self.kind in (SymbolKind.VARIABLE, SymbolKind.PARAMETER) and self.is_mutable

    def __str__(self) -> str:
        slot = f"#{self.slot}" if self.slot is not None else ""
        return f"{self.kind.value} {self.name} ({self.storage.value}{slot})"


@dataclass(frozen=True)
class Binding:
    """
    Resolution of an identifier occurrence.

    `depth` is the nesting depth of the declaring scope (0 = program scope,
    -1 = builtin namespace) and `slot` the storage index.
    """
    symbol: Symbol
    depth: int
    slot: Optional[int]

    @property
    def storage(self) -> Storage:
        return self.symbol.storage

    @property
    def name(self) -> str:
        return self.symbol.name


class ScopeKind(Enum):
    """Types of scopes."""
    PROGRAM = "program"
    FUNCTION = "function"
    BLOCK = "block"
    LOOP = "loop"


@dataclass
class Scope:
    """Represents a lexical scope."""
    index: int
    kind: ScopeKind
    name: str
    parent: Optional[int] = None
    depth: int = 0
    function_index: int = 0
    symbols: Dict[str, Symbol] = field(default_factory=dict)

    # Slot counter; only used on program and function scopes
    next_slot: int = 0

    def lookup_symbol_local(self, name: str) -> Optional[Symbol]:
        """Look up a symbol only in this scope (no parent traversal)."""
        return self.symbols.get(name)

    def __str__(self) -> str:
        return f"Scope({self.kind.value}, {self.name}, {len(self.symbols)} symbols)"


class SymbolTable:
    """
    Manages the scope arena and symbol resolution.
    """

    def __init__(self):
        """Initialize the symbol table with the program scope and builtins."""
        self.scopes: List[Scope] = [Scope(0, ScopeKind.PROGRAM, "<program>")]
        self._current = 0
        self.builtins: Dict[str, Symbol] = {}
        self._initialize_builtins()

    def _initialize_builtins(self):
        for index, spec in enumerate(BUILTINS):
            self.builtins[spec.name] = Symbol(
                name=spec.name,
                kind=SymbolKind.BUILTIN,
                storage=Storage.BUILTIN,
                span=None,
                slot=index,
                scope_index=-1,
                function_index=-1,
            )

    @property
    def global_scope(self) -> Scope:
        return self.scopes[0]

    @property
    def current_scope(self) -> Scope:
        return self.scopes[self._current]

    @property
    def current_function_scope(self) -> Scope:
        return self.scopes[self.current_scope.function_index]

    def enter_scope(self, kind: ScopeKind, name: str) -> Scope:
        parent = self.current_scope
        index = len(self.scopes)
        scope = Scope(
            index=index,
            kind=kind,
            name=name,
            parent=parent.index,
            depth=parent.depth + 1,
            function_index=index if kind == ScopeKind.FUNCTION else parent.function_index,
        )
        self.scopes.append(scope)
        self._current = index
        return scope

    def exit_scope(self) -> Scope:
        scope = self.current_scope
        if scope.parent is None:
            raise RuntimeError("cannot exit the program scope")
        self._current = scope.parent
        return scope

    def declare(self, name: str, kind: SymbolKind, span: SourceSpan,
                is_mutable: bool = False, initialized: bool = True,
                declaration: Any = None) -> Symbol:
        """
        Declare a symbol in the current scope.

        Variables, constants and parameters receive the next slot of the
        enclosing function; declared functions need none.

        Raises:
            SemanticError: if the name is already declared in this scope
        """
        scope = self.current_scope
        existing = scope.lookup_symbol_local(name)
        if existing is not None:
            raise create_redefinition_error(
                name, span, existing.span, is_parameter=kind == SymbolKind.PARAMETER
            )

        function_scope = self.current_function_scope
        if kind == SymbolKind.FUNCTION:
            storage = Storage.FUNCTION
            slot = None
        else:
            storage = Storage.GLOBAL if function_scope.kind == ScopeKind.PROGRAM else Storage.LOCAL
            slot = function_scope.next_slot
            function_scope.next_slot += 1

        symbol = Symbol(
            name=name,
            kind=kind,
            storage=storage,
            span=span,
            slot=slot,
            is_mutable=is_mutable,
            scope_index=scope.index,
            function_index=function_scope.index,
            initialized=initialized,
            declaration=declaration,
        )
        scope.symbols[name] = symbol
        return symbol

    def resolve(self, name: str) -> Optional[Tuple[Symbol, int]]:
        """
        Find the innermost declaration of `name`.

        Returns:
            (symbol, depth of the declaring scope), or None if unresolved
        """
        index: Optional[int] = self._current
        while index is not None:
            scope = self.scopes[index]
            symbol = scope.symbols.get(name)
            if symbol is not None:
                return symbol, scope.depth
            index = scope.parent

        if name in self.builtins:
            return self.builtins[name], -1
        return None

    def visible_names(self) -> List[str]:
        names = set(self.builtins)
        index: Optional[int] = self._current
        while index is not None:
            scope = self.scopes[index]
            names.update(scope.symbols)
            index = scope.parent
        return sorted(names)

    def get_similar_names(self, name: str, max_distance: int = 2) -> List[str]:
        """Get visible symbol names similar to the given name (for error suggestions)."""
        def levenshtein_distance(s1: str, s2: str) -> int:
            """Calculate edit distance between two strings."""
            if len(s1) < len(s2):
                return levenshtein_distance(s2, s1)

            if len(s2) == 0:
                return len(s1)

            previous_row = list(range(len(s2) + 1))
            for i, c1 in enumerate(s1):
                current_row = [i + 1]
                for j, c2 in enumerate(s2):
                    insertions = previous_row[j + 1] + 1
                    deletions = current_row[j] + 1
                    substitutions = previous_row[j] + (c1 != c2)
                    current_row.append(min(insertions, deletions, substitutions))
                previous_row = current_row

            return previous_row[-1]

        similar_names = []
        for symbol_name in self.visible_names():
            distance = levenshtein_distance(name.lower(), symbol_name.lower())
            if distance <= max_distance:
                similar_names.append((symbol_name, distance))

        # Sort by distance and return names only
        similar_names.sort(key=lambda x: x[1])
        return [name for name, _ in similar_names[:5]]

    def __str__(self) -> str:
        return f"SymbolTable({len(self.scopes)} scopes)"
