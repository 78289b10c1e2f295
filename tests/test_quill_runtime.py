import io
import math

import pytest

from quill.quill_runtime import (
    Console, StdLib, ScriptRunner, ExecutionResult, create_root_environment,
)
from quill.quill_datatypes import (
    NativeFunction, QuillList, Environment, ImmutableAssignment, UnassignedVariable,
)


def run_quill(src: str, **kwargs):
    runner = ScriptRunner(**kwargs)
    return runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', f"expected success, got {res.status}: {res.error_message}"
    if expected is not None:
        assert res.value == expected


def assert_error(res, kind):
    assert res.status == 'error', f"expected error, got value {res.value!r}"
    assert res.error_kind == kind, res.error_message


# --- Console ---

def test_console_reads_lines_without_terminators():
    console = Console(stdin=io.StringIO("one\r\ntwo\n"))
    assert console.readline() == "one"
    assert console.readline() == "two"
    assert console.readline() == ""


def test_console_writes_to_given_stream():
    out = io.StringIO()
    Console(stdout=out).write("hi")
    assert out.getvalue() == "hi"


# --- StdLib ---

def test_stdlib_exposes_every_native():
    natives = StdLib(Console()).natives()
    assert set(natives) == {
        "print", "println", "input", "prompt", "stringify",
        "floor", "round", "ceil", "log", "random", "length",
    }
    assert all(isinstance(fn, NativeFunction) for fn in natives.values())


def test_native_arities_come_from_signatures():
    natives = StdLib(Console()).natives()
    assert natives["floor"].arity == 1
    assert natives["random"].arity == 0
    assert natives["print"].arity is None
    assert (natives["input"].arity, natives["input"].max_arity) == (0, 1)
    assert (natives["prompt"].arity, natives["prompt"].max_arity) == (0, 1)


def test_natives_are_bound_immutably():
    env = create_root_environment()
    assert env.parent is None
    assert env.lookup("print").mutable is False
    with pytest.raises(ImmutableAssignment):
        env.assign("floor", 1.0)


def test_input_parses_numbers_and_echoes_question():
    out = io.StringIO()
    lib = StdLib(Console(stdout=out, stdin=io.StringIO("42\n-3.5\nhello\n3.\n")))
    assert lib._input() == 42.0
    assert lib._input("n? ") == -3.5
    assert lib._input("name? ") == "hello"
    assert lib._input() == "3."
    assert lib._input() == ""
    assert out.getvalue() == "n? name? "


@pytest.mark.parametrize("value, expected", [
    (2.5, 3.0),
    (-2.5, -2.0),
    (-2.6, -3.0),
    (math.inf, math.inf),
])
def test_round_halves_up(value, expected):
    assert StdLib(Console())._round(value) == expected


def test_log_edge_values():
    lib = StdLib(Console())
    assert lib._log(0.0) == -math.inf
    assert math.isnan(lib._log(-1.0))
    assert lib._log(100.0) == 2.0


def test_length_of_list():
    assert StdLib(Console())._length(QuillList([1.0, 2.0, 3.0])) == 3.0


# --- ScriptRunner ---

def test_handle_script_success():
    assert_ok(run_quill("1 + 2"), 3)


def test_declarations_persist_between_scripts():
    runner = ScriptRunner()
    assert_ok(runner.handle_script("mut x = 2"))
    assert_ok(runner.handle_script("x * 3"), 6)


def test_discard_forgets_declarations():
    runner = ScriptRunner(discard=True)
    assert_ok(runner.handle_script("mut x = 2"))
    res = runner.handle_script("x")
    assert_error(res, "UnassignedVariable")
    assert isinstance(res.error, UnassignedVariable)


def test_reset_drops_user_bindings_but_keeps_natives():
    runner = ScriptRunner()
    runner.handle_script("mut x = 2")
    runner.reset()
    assert_error(runner.handle_script("x"), "UnassignedVariable")
    assert_ok(runner.handle_script("floor(1.5)"), 1)


def test_natives_can_be_shadowed_but_not_overwritten():
    runner = ScriptRunner()
    assert_error(runner.handle_script("print = 5"), "ImmutableAssignment")
    assert_ok(runner.handle_script("mut print = 5, print"), 5)
    runner.reset()
    assert isinstance(runner.root_scope["print"], NativeFunction)


def test_print_goes_through_the_console():
    out = io.StringIO()
    res = run_quill('println("hello"), print(1, 2)', console=Console(stdout=out))
    assert_ok(res, 2)
    assert out.getvalue() == "hello\n12"


def test_runner_keeps_tokens_and_ast():
    runner = ScriptRunner()
    runner.handle_script("1 + 2")
    assert [t.text for t in runner.last_tokens] == ["1", "+", "2"]
    assert type(runner.last_ast).__name__ == "BinaryOp"


def test_lex_error_has_location_and_caret():
    res = run_quill("1 + $")
    assert_error(res, "LexError")
    assert res.error_token == {'line': 1, 'col': 5}
    assert res.error_message.startswith("LexError: ")
    assert "> 1 | 1 + $" in res.error_message
    assert "    ^" in res.error_message
    assert res.format_error().startswith("Error on line 1, col 5: LexError")


def test_parse_error_message():
    res = run_quill("(1 + 2")
    assert_error(res, "ParseError")
    assert res.error_message.startswith("ParseError: Expected ')'")
    assert res.error_token is None
    assert res.format_error() == res.error_message


def test_evaluation_error_message_has_kind_prefix():
    res = run_quill("const y = 5, y = 6")
    assert_error(res, "ImmutableAssignment")
    assert res.error_message == "ImmutableAssignment: Cannot assign to constant 'y'"


def test_offending_value_is_printed():
    res = run_quill("mut n = 3, n(1)")
    assert_error(res, "NonCallable")
    assert "\nOffending 3" in res.error_message


def test_stacktrace_lists_active_calls():
    src = """
    mut boom = func x => x * "a",
    mut outer = func y => boom(y),
    outer(5)
    """
    res = run_quill(src)
    assert_error(res, "TypeMismatch")
    assert "Quill stacktrace: (outer 5) (boom 5)" in res.error_message


def test_stacktrace_is_truncated_for_deep_overflow():
    res = run_quill("mut f = func n => f(n + 1), f(0)", max_depth=20)
    assert_error(res, "StackOverflow")
    assert "Quill stacktrace: ... 11 more (f 11)" in res.error_message


def test_chained_assignment_reports_parse_error():
    res = run_quill("mut a = 1, mut b = 2, a = b = 3")
    assert_error(res, "ParseError")
    assert "Assignment to non-identifier" in res.error_message


def test_host_exceptions_become_internal_errors():
    runner = ScriptRunner()
    runner.native_scope.declare("boom", NativeFunction("boom", lambda: 1 / 0, arity=0), mutable=False)
    res = runner.handle_script("boom()")
    assert_error(res, "InternalError")
    assert res.error_message.startswith("InternalError: division by zero")


def test_dynamic_scoping_option():
    src = "mut x = 1, mut f = func () => x, mut g = func x => f(), g(5)"
    assert_ok(run_quill(src), 1)
    assert_ok(run_quill(src, scoping="dynamic"), 5)


def test_execution_result_defaults():
    res = ExecutionResult(status='success', value=1.0)
    assert res.error_kind is None
    assert res.format_error() == ""


def test_root_scope_chains_to_native_scope():
    runner = ScriptRunner()
    assert isinstance(runner.root_scope, Environment)
    assert runner.root_scope.parent is runner.native_scope
    assert runner.root_scope.root is runner.native_scope
