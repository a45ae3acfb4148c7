import json

import typer
from typer.testing import CliRunner

from nodes.cli import app
from nodes.services import create_node, get_node, list_nodes, tags_for

runner = CliRunner()


def test_create_prints_id(db):
    result = runner.invoke(app, ["create", "-c", "buy milk", "-t", "shopping,errands", "-t", "home"])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "1"
    assert tags_for(1) == ["errands", "home", "shopping"]

    result = runner.invoke(app, ["c", "--content", "second"])
    assert result.stdout.strip() == "2"

def test_create_opens_editor(db, monkeypatch):
    monkeypatch.setattr(typer, "edit", lambda text, **kw: "from the editor\n")
    result = runner.invoke(app, ["create"])
    assert result.exit_code == 0, result.output
    assert get_node(1).content == "from the editor\n"

def test_create_aborted_editor_is_an_error(db, monkeypatch):
    monkeypatch.setattr(typer, "edit", lambda text, **kw: None)
    result = runner.invoke(app, ["create"])
    assert result.exit_code == 1
    assert get_node(1) is None

def test_ls_and_select(db):
    a = create_node("buy milk", tags=["shopping"])
    b = create_node("call mom\nabout sunday")

    result = runner.invoke(app, ["ls"])
    assert result.exit_code == 0, result.output
    assert "buy milk" in result.stdout
    assert "[shopping]" in result.stdout
    assert "call mom" in result.stdout
    assert "about sunday" not in result.stdout

    result = runner.invoke(app, ["ls", "--full"])
    assert "about sunday" in result.stdout

    result = runner.invoke(app, ["ls", "tag:shopping"])
    assert "buy milk" in result.stdout
    assert "call mom" not in result.stdout

    result = runner.invoke(app, ["select"])
    assert result.stdout.split() == [str(b.id), str(a.id)]
    result = runner.invoke(app, ["select", "--rev"])
    assert result.stdout.split() == [str(a.id), str(b.id)]
    result = runner.invoke(app, ["select", "-n", "1", "#shopping"])
    assert result.stdout.split() == [str(a.id)]

def test_no_subcommand_lists(db):
    create_node("buy milk")
    result = runner.invoke(app, [])
    assert result.exit_code == 0, result.output
    assert "buy milk" in result.stdout

def test_ls_full_and_lines_conflict(db):
    result = runner.invoke(app, ["ls", "--full", "--lines", "2"])
    assert result.exit_code == 2

def test_show_and_edit(db):
    n = create_node("hello")

    result = runner.invoke(app, ["show", str(n.id)])
    assert result.exit_code == 0, result.output
    assert result.stdout == "hello\n"
    assert get_node(n.id).viewed > n.viewed

    result = runner.invoke(app, ["e", str(n.id), "-c", "world"])
    assert result.exit_code == 0, result.output
    assert get_node(n.id).content == "world"

def test_edit_in_editor(db, monkeypatch):
    n = create_node("draft")
    seen = []

    def fake_edit(text, **kw):
        seen.append(text)
        return "final"

    monkeypatch.setattr(typer, "edit", fake_edit)
    result = runner.invoke(app, ["edit", str(n.id)])
    assert result.exit_code == 0, result.output
    assert seen == ["draft"]
    assert get_node(n.id).content == "final"

def test_missing_node_errors(db):
    result = runner.invoke(app, ["show", "99"])
    assert result.exit_code == 1
    assert "No such node: 99" in result.output

    result = runner.invoke(app, ["edit", "99", "-c", "x"])
    assert result.exit_code == 1

def test_tag_untag_archive(db):
    a = create_node("a")
    b = create_node("b")

    result = runner.invoke(app, ["tag", str(a.id), str(b.id), "-t", "x,y"])
    assert result.exit_code == 0, result.output
    assert tags_for(a.id) == ["x", "y"]

    result = runner.invoke(app, ["untag", "-t", "y"], input=f"{b.id}\n")
    assert result.exit_code == 0, result.output
    assert tags_for(b.id) == ["x"]

    result = runner.invoke(app, ["archive", str(a.id)])
    assert result.exit_code == 0, result.output
    assert [n.id for n in list_nodes()] == [b.id]
    assert runner.invoke(app, ["select", "-a"]).stdout.split() == [str(a.id)]

    runner.invoke(app, ["archive", "--toggle", str(a.id), str(b.id)])
    assert [n.id for n in list_nodes()] == [a.id]

    runner.invoke(app, ["unarchive", str(b.id)])
    assert {n.id for n in list_nodes()} == {a.id, b.id}

def test_rm_reads_ids_from_stdin(db):
    a = create_node("a", tags=["x"])
    b = create_node("b")

    result = runner.invoke(app, ["rm"], input=f"{a.id}\nnot-a-number\n")
    assert result.exit_code == 0, result.output
    assert get_node(a.id) is None
    assert get_node(b.id) is not None

    result = runner.invoke(app, ["rm", "42"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["rm"], input="")
    assert result.exit_code == 1
    assert "No valid ids given" in result.output

def test_tags_command(db):
    create_node("a", tags=["x"])
    create_node("b", tags=["x", "y"])
    result = runner.invoke(app, ["tags"])
    assert result.exit_code == 0, result.output
    assert "x" in result.stdout and "2" in result.stdout

def test_export_import(db, tmp_path):
    create_node("a", tags=["x"])
    out = tmp_path / "dump.json"
    result = runner.invoke(app, ["export", "--to", str(out)])
    assert result.exit_code == 0, result.output
    assert json.loads(out.read_text(encoding="utf-8"))[0]["content"] == "a"

    result = runner.invoke(app, ["import", "--from", str(out)])
    assert result.exit_code == 0, result.output
    assert len(list_nodes()) == 2

def test_storage_and_local_conflict(db):
    result = runner.invoke(app, ["-s", "work", "-l", "ls"])
    assert result.exit_code == 2

def test_import_reports_bad_files(db, tmp_path):
    missing = tmp_path / "missing.json"
    result = runner.invoke(app, ["import", "--from", str(missing)])
    assert result.exit_code == 1
    assert "Could not read" in result.output

    broken = tmp_path / "broken.json"
    broken.write_text("[{", encoding="utf-8")
    result = runner.invoke(app, ["import", "--from", str(broken)])
    assert result.exit_code == 1
    assert "Not valid JSON" in result.output

    wrong = tmp_path / "wrong.json"
    wrong.write_text('["buy milk"]', encoding="utf-8")
    result = runner.invoke(app, ["import", "--from", str(wrong)])
    assert result.exit_code == 1
    assert list_nodes() == []
