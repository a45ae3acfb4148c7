from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Optional
import json
import logging
import shlex
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .db import get_config, init_db, use_storage
from .exceptions import NodeNotFoundError, NodesError
from .services import (
    create_node, list_nodes, get_node, show_node, edit_node,
    delete_nodes, archive_nodes, toggle_archived, restore_nodes,
    add_tags, remove_tags, all_tags, export_nodes, import_nodes,
)
from .util import node_summary, read_ids

app = typer.Typer(help="Manages your node system from the command line")
console = Console()
err_console = Console(stderr=True)


@contextmanager
def _errors():
    try:
        yield
    except (NodesError, ValueError) as e:
        err_console.print(f"[red]{escape(str(e))}[/]", highlight=False)
        raise typer.Exit(1)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def _boot(
    ctx: typer.Context,
    storage: Optional[str] = typer.Option(None, "--storage", "-s", help="The storage to use"),
    local: bool = typer.Option(
        False, "--local", "-l", help="Use the node storage in the current directory"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="NODES_LOG_LEVEL"),
):
    _setup_logging(log_level)
    if storage and local:
        err_console.print("[red]--storage and --local can't be used together[/]")
        raise typer.Exit(2)
    use_storage(storage, local=local)
    with _errors():
        init_db()
    if ctx.invoked_subcommand is None:
        with _errors():
            _print_list()


def _split(values: Optional[list[str]]) -> list[str]:
    return [t for v in values or [] for t in v.split(",")]


def _pattern(words: Optional[list[str]]) -> Optional[str]:
    return shlex.join(words) if words else None


def _ids(values: Optional[list[int]]) -> list[int]:
    ids, invalid = read_ids(values, typer.get_text_stream("stdin"))
    for line in invalid:
        err_console.print(f"[yellow]Invalid node[/] '{escape(line)}'", highlight=False)
    if not ids:
        err_console.print("[red]No valid ids given[/]")
        raise typer.Exit(1)
    return ids


def _report_missing(ids: list[int], found: int) -> None:
    missing = len(set(ids)) - found
    if missing > 0:
        err_console.print(f"[yellow]{missing} node(s) not found[/]")
        raise typer.Exit(1)


def _edit_text(text: str) -> Optional[str]:
    """Open the configured editor (or $VISUAL/$EDITOR) on text."""
    argv = get_config().program("editor")
    editor = shlex.join(argv) if argv else None
    return typer.edit(text, editor=editor, extension=".md")


def _print_list(
    pattern: Optional[str] = None,
    num: int = 10,
    lines: int = 1,
    reverse: bool = False,
    reverse_display: bool = False,
    archived: bool = False,
    sort: str = "viewed",
) -> None:
    nodes = list_nodes(pattern=pattern, archived=archived, limit=num, sort=sort, reverse=reverse)
    if reverse_display:
        nodes.reverse()
    width = max(console.width - 8, 10)
    table = Table(box=None, show_header=False, pad_edge=False)
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Node", overflow="fold")
    table.add_column("Tags", style="magenta")
    for n in nodes:
        tags = "".join(f"[{t}]" for t in n.tags)
        table.add_row(Text(f"{n.id}:"), Text(node_summary(n.content, lines, width)), Text(tags))
    console.print(table)


@app.command()
def create(
    tags: Optional[list[str]] = typer.Option(
        None, "--tag", "-t", help="Tag the node (repeatable, comma separated)"
    ),
    content: Optional[str] = typer.Option(
        None, "--content", "-c", help="Write this content into the node instead of opening an editor"
    ),
):
    """Creates a new node."""
    with _errors():
        if content is None:
            content = _edit_text("")
        n = create_node(content or "", _split(tags))
    typer.echo(n.id)


app.command("c", hidden=True)(create)


@app.command()
def rm(ids: Optional[list[int]] = typer.Argument(None, help="Node ids; read from stdin if omitted")):
    """Removes nodes (by id), together with their tags."""
    ids = _ids(ids)
    with _errors():
        count = delete_nodes(ids)
    console.print(f"[red]Removed[/] {count} node(s)")
    _report_missing(ids, count)


@app.command("ls")
def ls(
    pattern: Optional[list[str]] = typer.Argument(None, help="Only list nodes matching this pattern"),
    num: int = typer.Option(10, "--num", "-n", min=0, help="Maximum number of nodes to show"),
    lines: Optional[int] = typer.Option(
        None, "--lines", "-l", min=1, help="How many lines to show at maximum from a node"
    ),
    full: bool = typer.Option(False, "--full", "-f", help="Print full nodes"),
    rev: bool = typer.Option(False, "--rev", "-R", help="Oldest first (before counting)"),
    revdisplay: bool = typer.Option(False, "--revdisplay", "-r", help="Reverse the display order"),
    archived: bool = typer.Option(False, "--archived", "-a", help="Show only archived nodes"),
    sort: str = typer.Option("viewed", "--sort", help="viewed|edited|created|id"),
):
    """Lists existing nodes."""
    if full and lines is not None:
        err_console.print("[red]--full and --lines can't be used together[/]")
        raise typer.Exit(2)
    shown = 2**32 - 1 if full else (lines or 1)
    with _errors():
        _print_list(_pattern(pattern), num, shown, rev, revdisplay, archived, sort)


@app.command()
def show(
    node_id: int = typer.Argument(..., metavar="ID", help="Id of node to show"),
    markdown: bool = typer.Option(False, "--markdown", "-m", help="Render content as markdown"),
):
    """Shows a node."""
    with _errors():
        n = show_node(node_id)
    if markdown:
        console.rule(f"#{n.id}")
        if n.tags:
            console.print(f"[dim]tags:[/] {escape(', '.join(n.tags))}", highlight=False)
        console.print(Markdown(n.content))
    else:
        typer.echo(n.content)


app.command("s", hidden=True)(show)


@app.command()
def edit(
    node_id: int = typer.Argument(..., metavar="ID", help="Id of node to edit"),
    content: Optional[str] = typer.Option(
        None, "--content", "-c", help="New content instead of opening an editor"
    ),
):
    """Edits a node."""
    with _errors():
        if content is None:
            current = get_node(node_id)
            if current is None:
                raise NodeNotFoundError(node_id)
            content = _edit_text(current.content)
            if content is None:
                # editor closed without saving: the node was still viewed
                content = current.content
        n = edit_node(node_id, content)
    console.print(f"[green]Updated[/] #{n.id}")


app.command("e", hidden=True)(edit)


@app.command()
def select(
    pattern: Optional[list[str]] = typer.Argument(None, help="Only select nodes matching this pattern"),
    num: int = typer.Option(999999, "--num", "-n", min=0, help="Maximum number of nodes"),
    archived: bool = typer.Option(False, "--archived", "-a", help="Select only archived nodes"),
    rev: bool = typer.Option(False, "--rev", "-r", help="Oldest first"),
    sort: str = typer.Option("viewed", "--sort", help="viewed|edited|created|id"),
):
    """Prints the ids of matching nodes, one per line."""
    with _errors():
        nodes = list_nodes(
            pattern=_pattern(pattern), archived=archived, limit=num, sort=sort, reverse=rev
        )
    for n in nodes:
        typer.echo(n.id)


@app.command()
def tag(
    ids: Optional[list[int]] = typer.Argument(None, help="Node ids; read from stdin if omitted"),
    tags: list[str] = typer.Option(..., "--tag", "-t", help="Tag to add (repeatable, comma separated)"),
):
    """Adds tags to nodes."""
    ids = _ids(ids)
    with _errors():
        added = add_tags(ids, _split(tags))
    console.print(f"[green]Tagged[/] ({added} new)")


@app.command()
def untag(
    ids: Optional[list[int]] = typer.Argument(None, help="Node ids; read from stdin if omitted"),
    tags: list[str] = typer.Option(..., "--tag", "-t", help="Tag to remove (repeatable, comma separated)"),
):
    """Removes tags from nodes."""
    ids = _ids(ids)
    with _errors():
        removed = remove_tags(ids, _split(tags))
    console.print(f"[yellow]Untagged[/] ({removed} removed)")


@app.command()
def archive(
    ids: Optional[list[int]] = typer.Argument(None, help="Node ids; read from stdin if omitted"),
    toggle: bool = typer.Option(False, "--toggle", help="Flip the archived flag instead of setting it"),
):
    """Archives nodes (soft delete)."""
    ids = _ids(ids)
    with _errors():
        count = toggle_archived(ids) if toggle else archive_nodes(ids, True)
    console.print(f"[yellow]Archived[/] {count} node(s)")
    _report_missing(ids, count)


@app.command()
def unarchive(ids: Optional[list[int]] = typer.Argument(None, help="Node ids; read from stdin if omitted")):
    """Restores archived nodes."""
    ids = _ids(ids)
    with _errors():
        count = restore_nodes(ids)
    console.print(f"[green]Unarchived[/] {count} node(s)")
    _report_missing(ids, count)


@app.command()
def tags():
    """Lists all tags with the number of nodes carrying them."""
    table = Table(title="Tags")
    table.add_column("Tag", style="magenta")
    table.add_column("Nodes", justify="right", style="cyan")
    for name, count in all_tags().items():
        table.add_row(Text(name), str(count))
    console.print(table)


@app.command()
def export(to: Path = typer.Option(..., "--to")):
    """Writes all nodes (archived ones too) to a JSON file."""
    payload = export_nodes()
    to.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    console.print(f"[green]Exported[/] {len(payload)} nodes → {to}")


def _read_export(path: Path) -> list[dict]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise NodesError(f"Could not read {path}: {e.strerror}") from e
    except json.JSONDecodeError as e:
        raise NodesError(f"Not valid JSON in {path}: {e}") from e
    if not isinstance(data, list) or not all(isinstance(i, dict) for i in data):
        raise NodesError(f"Not a list of exported nodes: {path}")
    return data


@app.command("import")
def import_(from_: Path = typer.Option(..., "--from")):
    """Adds the nodes of an exported JSON file as new nodes."""
    with _errors():
        data = _read_export(from_)
        count = import_nodes(data)
    console.print(f"[green]Imported[/] {count} nodes")


def main():
    app()


if __name__ == "__main__":
    main()
