"""
The core Quill interpreter: a tree-walking Evaluator over the AST.
"""
import math
import os
import sys
from typing import Any, List, Optional

from quill.quill_datatypes import (
    Expression, NumericLiteral, StringLiteral, Identifier, UnaryOp, BinaryOp,
    TernaryOp, Loop, Conditional, Closure, Declaration, FunctionDeclaration,
    FunctionCall, ListExpression,
    QuillFunction, NativeFunction, QuillList, Environment,
    ParseError, TypeMismatch, ArityMismatch, NonCallable, UnsupportedExpression,
    StackOverflow,
)

DEFAULT_MAX_DEPTH = 256

# Host frames budgeted per Quill call (call, body block and a few expression levels)
FRAMES_PER_CALL = 12

SEQUENCE_OPERATORS = (",", ";")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%", "^")
COMPARISON_OPERATORS = (">", "<", ">=", "<=", "==", "!=")
LOGICAL_OPERATORS = ("&&", "||", "^^")


# Helpers shared by the evaluator and the native library

def is_truthy(value: Any) -> bool:
    """Zero and the empty string are false; every other value is true."""
    match value:
        case float() | int():
            return value != 0
        case str():
            return value != ""
        case _:
            return True


def type_name(value: Any) -> str:
    match value:
        case bool():
            return "boolean"
        case float() | int():
            return "number"
        case str():
            return "string"
        case QuillList():
            return "list"
        case QuillFunction():
            return "function"
        case NativeFunction():
            return "native function"
        case _:
            return type(value).__name__


def values_equal(a: Any, b: Any) -> bool:
    """Value equality: both kind and contents must match."""
    match (a, b):
        case (float() | int(), float() | int()):
            return a == b
        case (str(), str()):
            return a == b
        case (QuillList(), QuillList()):
            return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
        case (QuillFunction(), QuillFunction()):
            return a is b or a == b
        case _:
            return a is b


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _modulo(a: float, b: float) -> float:
    # Remainder takes the sign of the dividend
    if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    if math.isinf(b):
        return a
    return math.fmod(a, b)


def _power(a: float, b: float) -> float:
    if a == 0 and b < 0:
        return math.inf
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0 and b.is_integer() and int(b) % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        return math.nan


def _repeat(text: str, count: float) -> str:
    if math.isnan(count) or math.isinf(count) or count < 0:
        from quill.quill_printer import format_number
        raise TypeMismatch(f"Cannot repeat a string {format_number(count)} times")
    return text * int(count)


def is_number(value: Any) -> bool:
    return isinstance(value, (float, int)) and not isinstance(value, bool)


def apply_arithmetic(op: str, a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        a, b = float(a), float(b)
        match op:
            case "+":
                return a + b
            case "-":
                return a - b
            case "*":
                return a * b
            case "/":
                return _divide(a, b)
            case "%":
                return _modulo(a, b)
            case "^":
                return _power(a, b)
            case _:
                raise UnsupportedExpression(f"Unknown arithmetic operator: {op}")
    match (op, a, b):
        case ("+", str(), str()):
            return a + b
        case ("*", str(), float() | int()) if not isinstance(b, bool):
            return _repeat(a, float(b))
    raise TypeMismatch(f"Unsupported operand types for {op}: {type_name(a)} and {type_name(b)}")


def apply_comparison(op: str, a: Any, b: Any) -> float:
    if op == "==":
        return 1.0 if values_equal(a, b) else 0.0
    if op == "!=":
        return 0.0 if values_equal(a, b) else 1.0
    if not ((is_number(a) and is_number(b)) or (isinstance(a, str) and isinstance(b, str))):
        raise TypeMismatch(f"Cannot order {type_name(a)} and {type_name(b)} with {op}")
    match op:
        case ">":
            res = a > b
        case "<":
            res = a < b
        case ">=":
            res = a >= b
        case "<=":
            res = a <= b
        case _:
            raise UnsupportedExpression(f"Unknown comparison operator: {op}")
    return 1.0 if res else 0.0


def apply_logical(op: str, a: Any, b: Any) -> float:
    left, right = is_truthy(a), is_truthy(b)
    match op:
        case "&&":
            res = left and right
        case "||":
            res = left or right
        case "^^":
            res = left != right
        case _:
            raise UnsupportedExpression(f"Unknown logical operator: {op}")
    return 1.0 if res else 0.0


class Evaluator:
    """The Quill execution engine.

    `max_depth` bounds nested function calls (default from QUILL_MAX_DEPTH,
    else DEFAULT_MAX_DEPTH). `scoping` selects where a called function's
    scope is chained: "lexical" (the environment captured at declaration) or
    "dynamic" (the caller's environment).
    """
    def __init__(self, max_depth: Optional[int] = None, scoping: str = "lexical"):
        if scoping not in ("lexical", "dynamic"):
            raise ValueError(f"scoping must be 'lexical' or 'dynamic', not {scoping!r}")
        if max_depth is None:
            max_depth = int(os.environ.get("QUILL_MAX_DEPTH", DEFAULT_MAX_DEPTH))
        self.max_depth = max_depth
        self.scoping = scoping
        self.call_stack: List[dict] = []
        self.current_node: Optional[Expression] = None
        self._depth = 0

    def _push_frame(self, name, func, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': call_site_node,
        })
        if len(self.call_stack) > self.max_depth:
            raise StackOverflow(f"Maximum call depth of {self.max_depth} exceeded")

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("QUILL_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def eval(self, node: Expression, env: Environment) -> Any:
        """Public entry point for evaluation."""
        if self._depth == 0:
            self.call_stack.clear()
            return self._eval_outermost(node, env)
        self._depth += 1
        try:
            return self._eval(node, env)
        finally:
            self._depth -= 1

    def _eval_outermost(self, node: Expression, env: Environment) -> Any:
        # The host stack must be deep enough for max_depth nested calls
        old_limit = sys.getrecursionlimit()
        needed = old_limit + self.max_depth * FRAMES_PER_CALL
        sys.setrecursionlimit(max(old_limit, needed))
        self._depth += 1
        try:
            return self._eval(node, env)
        except RecursionError:
            raise StackOverflow("Host recursion limit reached while evaluating") from None
        finally:
            self._depth -= 1
            sys.setrecursionlimit(old_limit)

    def _eval(self, node: Expression, env: Environment) -> Any:
        """Recursive dispatcher for evaluating any AST node."""
        self.current_node = node
        match node:
            case NumericLiteral():
                return node.value

            case StringLiteral():
                return node.content

            case Identifier():
                return env.lookup(node.name).value

            case UnaryOp():
                return self._eval_unary(node, env)

            case BinaryOp(operator="," | ";"):
                return self._eval_sequence(node, env)

            case BinaryOp(operator="="):
                if not isinstance(node.left, Identifier):
                    raise ParseError("Assignment to non-identifier", quill_obj=node.left)
                value = self._eval(node.right, env)
                return env.assign(node.left.name, value)

            case BinaryOp():
                return self._eval_binary(node, env)

            case TernaryOp():
                if is_truthy(self._eval(node.condition, env)):
                    return self._eval(node.success, env)
                return self._eval(node.failure, env)

            case Loop():
                # No scope per iteration: a braced body runs in the loop's environment
                body = node.body.body if isinstance(node.body, Closure) else node.body
                result = 0.0
                while is_truthy(self._eval(node.condition, env)):
                    result = self._eval(body, env)
                return result

            case Conditional():
                if is_truthy(self._eval(node.condition, env)):
                    return self._eval(node.success, env)
                if node.failure is not None:
                    return self._eval(node.failure, env)
                return math.nan

            case Declaration():
                value = self._eval(node.initializer, env)
                self._dbg("DECLARE", node.qualifier, node.name)
                return env.declare(node.name, value, mutable=node.mutable)

            case Closure():
                return self._eval(node.body, env.child())

            case FunctionDeclaration():
                return QuillFunction(node.params, node.body, closure=env)

            case FunctionCall():
                return self._eval_call(node, env)

            case ListExpression():
                return QuillList(self._eval(e, env) for e in node.elements)

            case _:
                raise UnsupportedExpression(f"Cannot evaluate {type(node).__name__}", quill_obj=node)

    def _eval_sequence(self, node: BinaryOp, env: Environment) -> Any:
        # Left-nested chains are walked iteratively so long scripts do not recurse per statement
        items = []
        while isinstance(node, BinaryOp) and node.operator in SEQUENCE_OPERATORS:
            items.append(node.right)
            node = node.left
        items.append(node)
        result = None
        for item in reversed(items):
            result = self._eval(item, env)
        return result

    def _eval_unary(self, node: UnaryOp, env: Environment) -> Any:
        operand = self._eval(node.operand, env)
        match node.operator:
            case "!" | "not":
                return 0.0 if is_truthy(operand) else 1.0
            case "#" | "-":
                if not is_number(operand):
                    raise TypeMismatch(f"Unsupported operand type for unary {node.operator}: {type_name(operand)}")
                if node.operator == "-":
                    return -float(operand)
                if math.isinf(operand) or math.isnan(operand):
                    return float(operand)
                return float(math.floor(operand))
            case _:
                raise UnsupportedExpression(f"Unknown unary operator: {node.operator}", quill_obj=node)

    def _eval_binary(self, node: BinaryOp, env: Environment) -> Any:
        op = node.operator
        left = self._eval(node.left, env)
        right = self._eval(node.right, env)
        if op in ARITHMETIC_OPERATORS:
            return apply_arithmetic(op, left, right)
        if op in COMPARISON_OPERATORS:
            return apply_comparison(op, left, right)
        if op in LOGICAL_OPERATORS:
            return apply_logical(op, left, right)
        raise UnsupportedExpression(f"Unknown binary operator: {op}", quill_obj=node)

    def _callee_name(self, node: FunctionCall) -> str:
        if isinstance(node.callee, Identifier):
            return node.callee.name
        return "<anonymous>"

    def _eval_call(self, node: FunctionCall, env: Environment) -> Any:
        func = self._eval(node.callee, env)
        name = self._callee_name(node)
        match func:
            case QuillFunction():
                if len(node.args) != func.arity:
                    raise ArityMismatch(f"Function '{name}'", func.arity, len(node.args))
                args = [self._eval(a, env) for a in node.args]
                parent = func.closure if self.scoping == "lexical" and func.closure is not None else env
                call_env = Environment(parent=parent)
                for param, value in zip(func.params, args):
                    call_env.declare(param, value, mutable=True)
                self._push_frame(name, func, args, node)
                self._dbg("CALL", name, args)
                result = self._eval(func.body, call_env)
                self._pop_frame()
                return result

            case NativeFunction():
                args = [self._eval(a, env) for a in node.args]
                self._push_frame(func.name, func, args, node)
                self._dbg("CALL native", func.name, args)
                result = func(*args)
                self._pop_frame()
                return result

            case _:
                raise NonCallable(f"Value of type {type_name(func)} is not callable", quill_obj=func)


def evaluate(expr: Expression, env: Optional[Environment] = None, evaluator: Optional[Evaluator] = None) -> Any:
    """Evaluates an expression, by default against a fresh root environment."""
    if env is None:
        from quill.quill_runtime import create_root_environment
        env = create_root_environment()
    return (evaluator or Evaluator()).eval(expr, env)
