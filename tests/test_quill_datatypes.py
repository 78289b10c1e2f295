import pytest

from quill.quill_datatypes import (
    Environment, Variable, NativeFunction, QuillFunction, QuillList, Closure, Identifier,
    UnassignedVariable, ImmutableAssignment, ArityMismatch, QuillError, EvaluationError,
)


def test_declare_and_lookup_walks_outward():
    root = Environment()
    root.declare("a", 1.0)
    child = root.child()
    grandchild = child.child()
    assert grandchild["a"] == 1.0
    assert "a" in grandchild
    assert grandchild.find_owner("a") is root
    assert grandchild.root is root


def test_missing_name_raises_unassigned():
    with pytest.raises(UnassignedVariable) as info:
        Environment().lookup("nope")
    assert info.value.name == "nope"
    assert isinstance(info.value, EvaluationError)
    assert isinstance(info.value, QuillError)


def test_get_returns_default_for_missing():
    env = Environment()
    assert env.get("x") is None
    assert env.get("x", 5) == 5


def test_assign_writes_to_owning_scope():
    root = Environment()
    root.declare("a", 1.0)
    child = root.child()
    child.assign("a", 2.0)
    assert root["a"] == 2.0
    assert "a" not in child.keys()


def test_shadowing_in_child_leaves_parent_alone():
    root = Environment()
    root.declare("a", 1.0)
    child = root.child()
    child.declare("a", 2.0)
    assert child["a"] == 2.0
    assert root["a"] == 1.0


def test_constant_cannot_be_assigned_but_can_be_redeclared():
    env = Environment()
    env.declare("k", 1.0, mutable=False)
    with pytest.raises(ImmutableAssignment):
        env.assign("k", 2.0)
    env.declare("k", 3.0)
    assert env.lookup("k") == Variable(3.0, True)


def test_parent_has_no_reference_to_children():
    root = Environment()
    child = root.child()
    child.declare("x", 1.0)
    assert "x" not in root
    assert child.parent is root


def test_native_function_arity_checks():
    fn = NativeFunction("pair", lambda a, b=0: a + b, arity=1, max_arity=2)
    assert fn(1) == 1
    assert fn(1, 2) == 3
    with pytest.raises(ArityMismatch):
        fn()
    with pytest.raises(ArityMismatch):
        fn(1, 2, 3)


def test_variadic_native_accepts_any_count():
    fn = NativeFunction("count", lambda *a: len(a))
    assert fn() == 0
    assert fn(1, 2, 3) == 3


def test_quill_function_equality_ignores_closure():
    body = Closure(Identifier("x"))
    a = QuillFunction(["x"], body, closure=Environment())
    b = QuillFunction(["x"], body, closure=Environment())
    assert a == b
    assert a.arity == 1
    assert repr(a) == "func x => { x }"


def test_quill_list_is_an_immutable_tuple():
    xs = QuillList([1.0, "a"])
    assert xs == (1.0, "a")
    assert repr(xs) == "QuillList([1.0, 'a'])"
    with pytest.raises(TypeError):
        xs[0] = 2.0
