"""
A pretty-printer for Quill values and syntax trees.
"""
import math
from decimal import Decimal

from quill.quill_datatypes import (
    NumericLiteral, StringLiteral, Identifier, UnaryOp, BinaryOp,
    TernaryOp, Loop, Conditional, Closure, Declaration, FunctionDeclaration,
    FunctionCall, ListExpression,
    QuillFunction, NativeFunction, QuillList, Environment,
)


def format_number(value: float) -> str:
    """Renders a number the way Quill displays it (`7`, `2.5`, `Infinity`, `NaN`)."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def format_literal(value: float) -> str:
    """Renders a numeric literal without an exponent so the lexer can read it back."""
    text = format_number(value)
    if "e" in text:
        text = format(Decimal(repr(value)), "f")
    return text


class Printer:
    """Formats Quill objects into readable Quill source strings."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def to_display(self, obj) -> str:
        """The display string used by `print` and `stringify`: strings are not quoted."""
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, bool):
            return self._pformat_primitive
        if isinstance(obj, (int, float)):
            return self._pformat_number
        if isinstance(obj, str):
            return self._pformat_str
        if isinstance(obj, QuillList):
            return self._pformat_list
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            float: self._pformat_number,
            int: self._pformat_number,
            str: self._pformat_str,
            QuillList: self._pformat_list,
            QuillFunction: self._pformat_function,
            NativeFunction: self._pformat_native,
            Environment: self._pformat_environment,
            NumericLiteral: self._pformat_numeric_literal,
            StringLiteral: self._pformat_string_literal,
            Identifier: self._pformat_identifier,
            UnaryOp: self._pformat_unary,
            BinaryOp: self._pformat_binary,
            TernaryOp: self._pformat_ternary,
            Loop: self._pformat_loop,
            Conditional: self._pformat_conditional,
            Closure: self._pformat_closure,
            Declaration: self._pformat_declaration,
            FunctionDeclaration: self._pformat_function_declaration,
            FunctionCall: self._pformat_call,
            ListExpression: self._pformat_list_expression,
        }

    # --- Values ---

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_number(self, obj, level):
        return format_number(float(obj))

    def _pformat_str(self, obj, level):
        # Only newlines are escaped; the lexer has no other escapes
        return '"' + obj.replace("\n", "\\n") + '"'

    def _pformat_list(self, obj, level):
        return "[" + ", ".join(self.pformat(v, level) for v in obj) + "]"

    def _pformat_function(self, obj, level):
        return self._format_func(obj.params, obj.body, level)

    def _pformat_native(self, obj, level):
        return f"<native {obj.name}>"

    def _pformat_environment(self, obj, level):
        names = ", ".join(obj.keys())
        return f"<environment [{names}]>"

    # --- Syntax trees ---

    def _operand(self, node, level):
        # Nested operator nodes are parenthesized so the output re-parses the same way
        text = self.pformat(node, level)
        if isinstance(node, (BinaryOp, TernaryOp, Declaration, FunctionDeclaration, Loop, Conditional)):
            return f"({text})"
        return text

    def _item(self, node, level):
        # Call arguments, list items and initializers sit below the sequence tier
        text = self.pformat(node, level)
        if isinstance(node, Declaration) or (isinstance(node, BinaryOp) and node.operator in (",", ";")):
            return f"({text})"
        return text

    def _pformat_numeric_literal(self, obj, level):
        return format_literal(obj.value)

    def _pformat_string_literal(self, obj, level):
        return self._pformat_str(obj.content, level)

    def _pformat_identifier(self, obj, level):
        return obj.name

    def _pformat_unary(self, obj, level):
        sep = " " if obj.operator.isalpha() else ""
        operand = self._operand(obj.operand, level)
        if isinstance(obj.operand, FunctionCall):
            operand = f"({operand})"
        return f"{obj.operator}{sep}{operand}"

    def _pformat_binary(self, obj, level):
        if obj.operator in (",", ";"):
            # Sequence is the loosest tier; only a right-nested sequence needs parentheses
            left = self.pformat(obj.left, level)
            right = self.pformat(obj.right, level)
            if isinstance(obj.right, BinaryOp) and obj.right.operator in (",", ";"):
                right = f"({right})"
            return f"{left}{obj.operator} {right}"
        left = self._operand(obj.left, level)
        right = self._operand(obj.right, level)
        return f"{left} {obj.operator} {right}"

    def _pformat_ternary(self, obj, level):
        cond = self._operand(obj.condition, level)
        success = self._operand(obj.success, level)
        failure = self._operand(obj.failure, level)
        return f"{cond} ? {success} : {failure}"

    def _pformat_loop(self, obj, level):
        cond = self._operand(obj.condition, level)
        return f"{obj.keyword} {cond} {self.pformat(obj.body, level)}"

    def _pformat_conditional(self, obj, level):
        cond = self._operand(obj.condition, level)
        out = f"if {cond} {self.pformat(obj.success, level)}"
        if obj.failure is not None:
            out += f" else {self.pformat(obj.failure, level)}"
        return out

    def _pformat_closure(self, obj, level):
        # Nested blocks indent relative to their own opening brace
        body = self.pformat(obj.body, level + 1)
        if "\n" not in body and len(body) <= 60:
            return f"{{ {body} }}"
        lines = [f"{self._indent_char}{line}" for line in body.splitlines()]
        return "{\n" + "\n".join(lines) + "\n}"

    def _pformat_declaration(self, obj, level):
        return f"{obj.qualifier} {obj.name} = {self._item(obj.initializer, level)}"

    def _pformat_function_declaration(self, obj, level):
        return self._format_func(obj.params, obj.body, level)

    def _format_func(self, params, body, level):
        if len(params) == 1:
            params_s = params[0]
        else:
            params_s = "(" + ", ".join(params) + ")"
        return f"func {params_s} => {self.pformat(body, level)}"

    def _pformat_call(self, obj, level):
        callee = self._operand(obj.callee, level)
        args = ", ".join(self._item(a, level) for a in obj.args)
        return f"{callee}({args})"

    def _pformat_list_expression(self, obj, level):
        return "[" + ", ".join(self._item(e, level) for e in obj.elements) + "]"
