"""Validate command for graph descriptions."""

from pathlib import Path

import typer

from ..app import app, console, get_json_mode
from ..utils import Output
from .generate import load_graph, parse_locks


@app.command("validate")
def validate_command(
    graph_file: Path = typer.Argument(..., help="Graph description to validate"),
    lock: list[str] = typer.Option(
        [], "--lock", help="Also check a branch choice lock given as NODE=INDEX"
    ),
):
    """
    Check a graph description for structural problems.

    Reports dangling prerequisites, prerequisite cycles, duplicate ids,
    negative costs, invalid rank counts, CHOICE nodes with fewer than two
    entries, out-of-range choice locks, required names that match no node,
    and roster templates naming unknown clusters.

    EXIT CODES:
        0 = Success (valid graph)
        1 = Validation error (malformed graph)
        3 = File not found

    EXAMPLES:
        buildspace validate tree.yaml
        buildspace validate tree.yaml --lock 9001=1
    """
    out = Output(console=console, json_mode=get_json_mode())
    out.blank()

    graph = load_graph(graph_file, out)
    if graph is None:
        raise typer.Exit(out.finish())

    issues = graph.structural_issues()
    if lock and not issues:
        from ...core.models import StructuralInputError

        try:
            graph.check_choice_locks(parse_locks(lock))
        except StructuralInputError as e:
            issues = e.issues

    out.set_data("graph", graph.meta.name)
    out.set_data("nodes", len(graph.nodes))
    out.set_data("branches", len(graph.branches))
    out.set_data("roster_templates", len(graph.roster_templates))
    out.set_data("issues", issues)

    if issues:
        out.error(f"{graph_file} has {len(issues)} structural issue(s)", issues=issues)
    else:
        out.success(f"{graph.summary()}", valid=True)
        unknown = graph.unknown_names(graph.excluded_names)
        if unknown:
            out.warning(
                f"Excluded names match no node or entry: {', '.join(unknown)}",
                suggestion="Check excluded_names for typos",
            )
        if graph.budget is None:
            out.warning(
                "Graph has no budget",
                suggestion="Pass --budget to `buildspace generate`",
            )

    raise typer.Exit(out.finish())
