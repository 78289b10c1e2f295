# quill_runtime.py

import re
import math
import random
import inspect
import os
import sys
from dataclasses import dataclass
from typing import Any, List, Optional, Literal, Dict, TextIO

from quill.quill_lexer import tokenize, Token
from quill.quill_parser import parse
from quill.quill_interpreter import Evaluator, is_number, type_name
from quill.quill_printer import Printer
from quill.quill_datatypes import (
    Environment, Expression, NativeFunction, QuillList,
    QuillError, LexError, ParseError, EvaluationError, TypeMismatch,
)

# ===================================================================
# 1. Host Capabilities
# ===================================================================

class Console:
    """Everything the native library may touch on the host: text output,
    line input and a random source. Streams default to the process streams,
    looked up at call time so redirection keeps working.
    """
    def __init__(self, stdout: Optional[TextIO] = None, stdin: Optional[TextIO] = None,
                 rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.stdout = stdout
        self.stdin = stdin
        self.rng = rng if rng is not None else random.Random(seed)

    def write(self, text: str):
        out = self.stdout if self.stdout is not None else sys.stdout
        out.write(text)
        out.flush()

    def readline(self) -> str:
        """Reads one line without its line terminator; EOF yields ''."""
        src = self.stdin if self.stdin is not None else sys.stdin
        line = src.readline()
        return line.rstrip("\r\n")

    def random(self) -> float:
        return self.rng.random()


# ===================================================================
# 2. The Standard Library
# ===================================================================

NUMBER_INPUT_RE = re.compile(r"^[+-]?[0-9]+(\.[0-9]+)?$")


def _require_number(value, fn_name: str) -> float:
    if not is_number(value):
        raise TypeMismatch(f"{fn_name} expects a number, got {type_name(value)}")
    return float(value)


def _integral(fn, x: float) -> float:
    if math.isinf(x) or math.isnan(x):
        return x
    return float(fn(x))


class StdLib:
    """Contains Python implementations for all Quill built-ins.

    Every method named `_<name>` becomes the native function `<name>`;
    its arity is read from the method signature.
    """
    ALIASES = {"prompt": "input"}

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.printer = Printer()

    def natives(self) -> Dict[str, NativeFunction]:
        out: Dict[str, NativeFunction] = {}
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                quill_name = name[1:]
                out[quill_name] = _as_native(quill_name, member)
        for alias, target in self.ALIASES.items():
            out[alias] = _as_native(alias, out[target].callback)
        return out

    def bind(self, env: Environment) -> Environment:
        """Binds every native into env as an immutable variable."""
        for name, fn in self.natives().items():
            env.declare(name, fn, mutable=False)
        return env

    # --- IO ---
    def _print(self, *values):
        for value in values:
            self.console.write(self.printer.to_display(value))
        return values[-1] if values else math.nan

    def _println(self, *values):
        for value in values:
            self.console.write(self.printer.to_display(value) + "\n")
        return values[-1] if values else math.nan

    def _input(self, question=""):
        if question != "":
            self.console.write(self.printer.to_display(question))
        line = self.console.readline()
        if NUMBER_INPUT_RE.match(line):
            return float(line)
        return line

    def _stringify(self, value):
        return self.printer.to_display(value)

    # --- Math ---
    def _floor(self, x):
        return _integral(math.floor, _require_number(x, "floor"))

    def _ceil(self, x):
        return _integral(math.ceil, _require_number(x, "ceil"))

    def _round(self, x):
        # Halves round up, including negative halves (-2.5 -> -2)
        return _integral(lambda v: math.floor(v + 0.5), _require_number(x, "round"))

    def _log(self, x):
        x = _require_number(x, "log")
        if math.isnan(x) or x < 0:
            return math.nan
        if x == 0:
            return -math.inf
        return math.log10(x)

    def _random(self):
        return self.console.random()

    # --- Sequences ---
    def _length(self, value):
        if isinstance(value, (str, QuillList)):
            return float(len(value))
        raise TypeMismatch(f"length expects a string or list, got {type_name(value)}")


def _as_native(name: str, callback) -> NativeFunction:
    """Wraps a host callable, reading its arity from the signature."""
    params = inspect.signature(callback).parameters.values()
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return NativeFunction(name, callback)
    required = sum(1 for p in params if p.default is inspect.Parameter.empty)
    return NativeFunction(name, callback, arity=required, max_arity=len(params))


def create_root_environment(console: Optional[Console] = None) -> Environment:
    """A parentless Environment seeded with the native library."""
    return StdLib(console).bind(Environment())


# ===================================================================
# 3. Script Execution
# ===================================================================

ErrorToken = Dict[str, Any]

STACKTRACE_FRAMES = 10


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error: Optional[Exception] = None
    error_message: Optional[str] = None
    error_token: Optional[ErrorToken] = None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, QuillError):
            return self.error.kind
        return "InternalError"

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")

        # Add a location prefix when we have a token; avoid duplicating the same prefix
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Tokenizes, parses, and evaluates Quill code.

    Declarations are kept in `root_scope` across calls to handle_script
    unless `discard` is set, in which case each script starts from a fresh
    scope. User code runs in a child of the native scope, so natives can be
    shadowed but never overwritten.
    """

    def __init__(self, console: Optional[Console] = None, discard: bool = False,
                 max_depth: Optional[int] = None, scoping: str = "lexical"):
        self.console = console or Console()
        self.discard = discard
        self.printer = Printer()
        self.evaluator = Evaluator(max_depth=max_depth, scoping=scoping)
        self.native_scope = create_root_environment(self.console)
        self.root_scope = self.native_scope.child()
        self.last_tokens: Optional[List[Token]] = None
        self.last_ast: Optional[Expression] = None

    def reset(self):
        """Drops every user binding."""
        self.root_scope = self.native_scope.child()

    def _dbg(self, *parts):
        if os.environ.get("QUILL_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def compile(self, source_code: str) -> Expression:
        """Tokenizes and parses source, remembering both for inspection."""
        self.last_tokens = None
        self.last_ast = None
        self.last_tokens = tokenize(source_code)
        self._dbg("TOKENS", len(self.last_tokens))
        self.last_ast = parse(self.last_tokens)
        self._dbg("AST", type(self.last_ast).__name__)
        return self.last_ast

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        if self.discard:
            self.reset()
        self.evaluator.call_stack.clear()
        try:
            ast = self.compile(source_code)
            value = self.evaluator.eval(ast, self.root_scope)
            return ExecutionResult(status='success', value=value)
        except Exception as e:
            err_msg, err_token = self._format_error(e, source_code)
            self._dbg("ERROR", err_msg)
            return ExecutionResult(
                status='error',
                error=e,
                error_message=err_msg,
                error_token=err_token,
            )

    def _format_error(self, e: Exception, source: str) -> tuple[str, Optional[ErrorToken]]:
        token = None
        match e:
            case LexError():
                msg = f"LexError: {e.message}"
                if e.line is not None:
                    token = {'line': e.line, 'col': e.col}
                    context = self._source_context(source, e.line, e.col)
                    if context:
                        msg = f"{msg}\n{context}"
            case ParseError():
                msg = f"ParseError: {e.message}"
            case EvaluationError():
                msg = f"{e.kind}: {e.message}"
            case _:
                msg = f"InternalError: {e}"

        # Pretty-print an attached Quill object (value or node)
        quill_obj = getattr(e, 'quill_obj', None)
        if quill_obj is not None:
            msg = f"{msg}\nOffending {self.printer.pformat(quill_obj)}"

        if not isinstance(e, LexError):
            st = self._format_stacktrace()
            if st:
                msg += "\n" + st
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        frames = []
        for frame in stack[-STACKTRACE_FRAMES:]:
            args = " ".join(self.printer.pformat(a) for a in frame.get('args') or [])
            frame_str = f"({frame.get('name') or '<call>'}"
            if args:
                frame_str += f" {args}"
            frames.append(frame_str + ")")
        hidden = len(stack) - STACKTRACE_FRAMES
        prefix = f"... {hidden} more " if hidden > 0 else ""
        return "Quill stacktrace: " + prefix + " ".join(frames)
