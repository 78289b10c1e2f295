import importlib.util
import sys
from pathlib import Path
import uuid
import pytest


def _load_repl_module():
    """Dynamically load the top-level quill_repl.py as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "quill_repl.py"
    mod_name = f"quill_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


def _feed(monkeypatch, repl, lines):
    it = iter(lines)

    def fake_read_line(prompt: str) -> str:
        return next(it)
    monkeypatch.setattr(repl, "read_line", fake_read_line)


def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["exit"])

    repl.main([])
    out = capsys.readouterr().out
    assert "Quill REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out
    assert "forgotten" not in out


def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        'println("hello from quill")',
        "1 + 2",
        "",
        "mut x = 4",
        "x * 2",
        "exit",
    ])

    repl.main([])
    out, err = capsys.readouterr()
    assert "hello from quill\n" in out
    assert "\n3\n" in out
    assert "\n4\n" in out
    assert "\n8\n" in out
    assert err == ""


def test_repl_errors_print_to_stderr_and_continue(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["z", "1 + $", "5", "exit"])

    repl.main([])
    out, err = capsys.readouterr()
    assert "UnassignedVariable: Attempted to access unassigned variable 'z'" in err
    assert "Error on line 1, col 5: LexError" in err
    assert out.rstrip().endswith("5")


def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [""])

    repl.main([])
    out = capsys.readouterr().out
    assert "Exiting." in out


def test_repl_discard_mode_forgets_declarations(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["mut x = 1", "x", "exit"])

    repl.main(["--discard"])
    out, err = capsys.readouterr()
    assert "Declarations are forgotten after each input." in out
    assert "UnassignedVariable" in err


def test_repl_verbose_dumps_tokens_and_ast(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["1 + 2", "exit"])

    repl.main(["-v"])
    out = capsys.readouterr().out
    assert "tokens:" in out
    assert "kind: number" in out
    assert "ast:" in out
    assert "node: BinaryOp" in out


def test_run_script_file(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "pow.quill"
    script.write_text("mut a = 2,\na ^ 10\n", encoding="utf-8")

    repl.main([str(script)])
    assert capsys.readouterr().out.strip() == "1024"


def test_script_file_error_exits_nonzero(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.quill"
    script.write_text("mut a = 1,\nb\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        repl.main([str(script)])
    assert exc.value.code == 1
    assert "UnassignedVariable" in capsys.readouterr().err


def test_missing_script_file_exits_nonzero(tmp_path, capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit) as exc:
        repl.main([str(tmp_path / "nope.quill")])
    assert exc.value.code == 1
    assert "file not found" in capsys.readouterr().err


def test_graph_option_writes_html(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "g.quill"
    script.write_text("1 + 2", encoding="utf-8")
    out_file = tmp_path / "g.html"

    repl.main([str(script), "--graph", str(out_file)])
    html = out_file.read_text(encoding="utf-8")
    assert "<title>g.quill</title>" in html
    assert "vis.Network" in html
    assert capsys.readouterr().out.strip() == "3"


def test_unknown_option_exits_with_usage(capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit) as exc:
        repl.parse_args(["--bogus"])
    assert exc.value.code == 2
    assert "usage:" in capsys.readouterr().err


def test_parse_args_collects_options():
    repl = _load_repl_module()
    opts, path = repl.parse_args(["-v", "--discard", "--graph", "out.html", "s.quill"])
    assert opts == {'verbose': True, 'discard': True, 'graph': "out.html"}
    assert path == "s.quill"


def test_repl_verbose_survives_trees_too_deep_to_dump(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["+".join(["1"] * 1500), "2 + 2", "exit"])

    repl.main(["-v"])
    out, err = capsys.readouterr()
    assert "syntax tree too deep to dump" in err
    assert "\n4\n" in out
