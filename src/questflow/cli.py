"""CLI interface."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from questflow.codec import generate, parse
from questflow.ids import SourceDocument, build_identifier_index, extract_identifiers
from questflow.layout import layout as run_layout

app = typer.Typer(add_completion=False, help="Format, lay out and cross-check quest conversation files.")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline details.")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _emit(path: Path, text: str, write: bool) -> None:
    if write:
        path.write_text(text, encoding="utf-8")
        typer.echo(f"wrote {path}", err=True)
    else:
        typer.echo(text, nl=False)


@app.command("format")
def format_(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Conversation YAML file."),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the file in place."),
):
    """Rewrite a conversation file with canonical field names."""
    graph = parse(file.read_text(encoding="utf-8"))
    _emit(file, generate(graph.nodes, graph.edges), write)


@app.command()
def layout(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Conversation YAML file."),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the file in place."),
):
    """Recompute every node position, ignoring existing canvas data."""
    graph = parse(file.read_text(encoding="utf-8"))
    nodes = run_layout(graph.nodes, graph.edges)
    _emit(file, generate(nodes, graph.edges), write)


@app.command()
def dupes(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Conversation YAML files."),
    current: Optional[str] = typer.Option(None, "--current", "-c", help="Only check ids of this file against the others."),
):
    """Report node ids defined in more than one file."""
    documents = {str(f): SourceDocument(name=f.name, content=f.read_text(encoding="utf-8")) for f in files}

    if current is not None:
        matches = [d for d in documents if d == current or documents[d].name == current]
        if not matches:
            raise typer.BadParameter(f"{current} is not one of the given files", param_hint="--current")
        doc_id = matches[0]
        index = build_identifier_index(documents, exclude=doc_id)
        found = 0
        for identifier in extract_identifiers(documents[doc_id].content):
            others = index.check_duplicate(identifier)
            if others:
                found += 1
                typer.echo(f"{identifier}: {', '.join(others)}")
    else:
        index = build_identifier_index(documents)
        found = 0
        for identifier, names in index.locations.items():
            if len(names) > 1:
                found += 1
                typer.echo(f"{identifier}: {', '.join(names)}")

    if found:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
