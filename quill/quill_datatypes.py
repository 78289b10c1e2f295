"""
Defines the core data types for the Quill language runtime.

This module provides the AST node classes produced by the parser, the
runtime value types the evaluator works with, the scoped variable model,
and the error taxonomy shared by every stage of the pipeline.
"""

from abc import ABC
from typing import List, Dict, Any, Optional, Callable


# =================================================================
# Errors
# =================================================================

class QuillError(Exception):
    """Base class for every error raised by the Quill pipeline.

    `quill_obj` optionally carries the offending Quill value or AST node so
    the script runner can render it next to the message.
    """
    def __init__(self, message: str, quill_obj: Any = None):
        super().__init__(message)
        self.message = message
        self.quill_obj = quill_obj

    @property
    def kind(self) -> str:
        return type(self).__name__


class LexError(QuillError):
    """Unrecognized character sequence during tokenization."""
    def __init__(self, message: str, offset: Optional[int] = None,
                 line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.offset = offset
        self.line = line
        self.col = col


class ParseError(QuillError):
    """Structurally invalid token sequence (or assignment target)."""
    pass


class EvaluationError(QuillError):
    """Base class for errors raised while evaluating an AST."""
    pass


class UnassignedVariable(EvaluationError):
    def __init__(self, name: str):
        super().__init__(f"Attempted to access unassigned variable '{name}'")
        self.name = name


class ImmutableAssignment(EvaluationError):
    def __init__(self, name: str):
        super().__init__(f"Cannot assign to constant '{name}'")
        self.name = name


class TypeMismatch(EvaluationError):
    pass


class ArityMismatch(EvaluationError):
    def __init__(self, name: str, expected: int, got: int):
        super().__init__(f"{name} expects {expected} argument{'s' if expected != 1 else ''}, got {got}")
        self.expected = expected
        self.got = got


class NonCallable(EvaluationError):
    pass


class UnsupportedExpression(EvaluationError):
    pass


class StackOverflow(EvaluationError):
    pass


# =================================================================
# AST Nodes
# =================================================================

class Expression(ABC):
    """Abstract base class for all AST nodes.

    Subclasses list their child attributes in `_fields`; equality and repr
    are structural over those fields.
    """
    _fields: tuple = ()

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, f) == getattr(other, f) for f in self._fields)

    def __repr__(self) -> str:
        args = ", ".join(f"{getattr(self, f)!r}" for f in self._fields)
        return f"{type(self).__name__}({args})"

    def children(self) -> List['Expression']:
        """Direct sub-expressions in source order."""
        out = []
        for f in self._fields:
            v = getattr(self, f)
            if isinstance(v, Expression):
                out.append(v)
            elif isinstance(v, list):
                out.extend(x for x in v if isinstance(x, Expression))
        return out


class NumericLiteral(Expression):
    _fields = ("value",)

    def __init__(self, value: float):
        self.value = float(value)

    def __eq__(self, other):
        if not isinstance(other, NumericLiteral):
            return NotImplemented
        # NaN literals are structurally equal to each other
        if self.value != self.value and other.value != other.value:
            return True
        return self.value == other.value


class StringLiteral(Expression):
    _fields = ("content",)

    def __init__(self, content: str):
        self.content = content


class Identifier(Expression):
    _fields = ("name",)

    def __init__(self, name: str):
        self.name = name


class UnaryOp(Expression):
    _fields = ("operator", "operand")

    def __init__(self, operator: str, operand: Expression):
        self.operator = operator
        self.operand = operand


class BinaryOp(Expression):
    _fields = ("operator", "left", "right")

    def __init__(self, operator: str, left: Expression, right: Expression):
        self.operator = operator
        self.left = left
        self.right = right


class TernaryOp(Expression):
    _fields = ("condition", "success", "failure")

    def __init__(self, condition: Expression, success: Expression, failure: Expression):
        self.condition = condition
        self.success = success
        self.failure = failure


class Loop(Expression):
    """`for cond { body }` (or `while`). `keyword` keeps the spelling used."""
    _fields = ("keyword", "condition", "body")

    def __init__(self, condition: Expression, body: Expression, keyword: str = "for"):
        self.keyword = keyword
        self.condition = condition
        self.body = body


class Conditional(Expression):
    _fields = ("condition", "success", "failure")

    def __init__(self, condition: Expression, success: Expression, failure: Optional[Expression] = None):
        self.condition = condition
        self.success = success
        self.failure = failure


class Closure(Expression):
    """An explicit `{ ... }` block that introduces a new child scope."""
    _fields = ("body",)

    def __init__(self, body: Expression):
        self.body = body


class Declaration(Expression):
    _fields = ("qualifier", "name", "initializer")

    def __init__(self, qualifier: str, name: str, initializer: Expression):
        self.qualifier = qualifier
        self.name = name
        self.initializer = initializer

    @property
    def mutable(self) -> bool:
        return self.qualifier == "mut"


class FunctionDeclaration(Expression):
    _fields = ("params", "body")

    def __init__(self, params: List[str], body: Expression):
        self.params = list(params)
        self.body = body


class FunctionCall(Expression):
    _fields = ("callee", "args")

    def __init__(self, callee: Expression, args: List[Expression]):
        self.callee = callee
        self.args = list(args)


class ListExpression(Expression):
    """A list literal `[a, b, ...]`; evaluates to a QuillList."""
    _fields = ("elements",)

    def __init__(self, elements: List[Expression]):
        self.elements = list(elements)


# =================================================================
# Runtime Values
# =================================================================
#
# Numbers are Python floats and strings are Python strs. The remaining
# value kinds are defined here.

class QuillCallable(ABC):
    """Abstract base class for all values callable within Quill."""
    pass


class QuillFunction(QuillCallable):
    """A function defined in Quill with `func`.

    This is a closure, bundling the parameter names, the body expression,
    and the environment active where the function was declared.
    """
    def __init__(self, params: List[str], body: Expression, closure: Optional['Environment'] = None):
        self.params = list(params)
        self.body = body
        self.closure = closure

    @property
    def arity(self) -> int:
        return len(self.params)

    def __repr__(self) -> str:
        from quill.quill_printer import Printer
        return Printer().pformat(self)

    def __eq__(self, other):
        if not isinstance(other, QuillFunction):
            return NotImplemented
        # NOTE: closure comparison is intentionally omitted.
        return self.params == other.params and self.body == other.body

    def __hash__(self):
        return id(self)


class NativeFunction(QuillCallable):
    """A host-implemented function exposed to Quill.

    `arity` is the exact argument count the callback accepts, or None for a
    variadic callback. `max_arity` allows optional trailing arguments.
    """
    def __init__(self, name: str, callback: Callable[..., Any],
                 arity: Optional[int] = None, max_arity: Optional[int] = None):
        self.name = name
        self.callback = callback
        self.arity = arity
        self.max_arity = max_arity if max_arity is not None else arity

    def check_arity(self, got: int):
        if self.arity is None:
            return
        if got < self.arity or (self.max_arity is not None and got > self.max_arity):
            raise ArityMismatch(self.name, self.arity, got)

    def __call__(self, *args):
        self.check_arity(len(args))
        return self.callback(*args)

    def __repr__(self) -> str:
        return f"<NativeFunction {self.name}>"


class QuillList(tuple):
    """An immutable, ordered sequence of Quill values (`[a, b, ...]`)."""
    def __repr__(self) -> str:
        return f"QuillList({list(self)!r})"


# =================================================================
# Variables and Environments
# =================================================================

class Variable:
    """A named binding's payload: the current value and its mutability."""
    __slots__ = ("value", "mutable")

    def __init__(self, value: Any, mutable: bool):
        self.value = value
        self.mutable = mutable

    def __repr__(self) -> str:
        return f"Variable({self.value!r}, mutable={self.mutable})"

    def __eq__(self, other):
        return isinstance(other, Variable) and self.value == other.value and self.mutable == other.mutable


class Environment:
    """A Quill scope: bindings plus an optional enclosing environment.

    Lookups walk the chain from this scope outward. Writes go to the scope
    that owns the name. Children hold a reference to their parent; parents
    never reference children.
    """
    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Variable] = {}
        self.parent = parent

    def declare(self, name: str, value: Any, mutable: bool = True) -> Any:
        """Creates (or overwrites) a binding in this scope."""
        self.bindings[name] = Variable(value, mutable)
        return value

    def find_owner(self, name: str) -> Optional['Environment']:
        """Finds the Environment in the lookup chain that owns name."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        return None

    def lookup(self, name: str) -> Variable:
        owner = self.find_owner(name)
        if owner is None:
            raise UnassignedVariable(name)
        return owner.bindings[name]

    def assign(self, name: str, value: Any) -> Any:
        """Rebinds an existing mutable variable in the scope that owns it."""
        var = self.lookup(name)
        if not var.mutable:
            raise ImmutableAssignment(name)
        var.value = value
        return value

    def child(self) -> 'Environment':
        return Environment(parent=self)

    def __getitem__(self, name: str) -> Any:
        return self.lookup(name).value

    def __contains__(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        if owner is not None:
            return owner.bindings[name].value
        return default

    def keys(self):
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    @property
    def root(self) -> 'Environment':
        env = self
        while env.parent is not None:
            env = env.parent
        return env

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Environment bindings=[{keys}]{parent_id}>"
