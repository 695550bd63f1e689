"""Generate command: run the full build design pipeline on a graph file."""

import copy
import time
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError

from ...config import get_config
from ...core.models import GenerationResult, Overrides, StructuralInputError, TalentGraph
from ...design import generate_builds
from ..app import app, console, get_json_mode, setup_logging
from ..utils import Output, ExitCode, format_elapsed, format_result_for_json


def load_graph(path: Path, out: Output) -> TalentGraph | None:
    """Load a graph file, reporting failures through `out`."""
    if not path.exists():
        out.error(
            f"File not found: {path}",
            exit_code=ExitCode.FILE_NOT_FOUND,
            suggestion=f"Check the file path: {path.absolute()}",
        )
        return None
    try:
        return TalentGraph.from_yaml(path)
    except yaml.YAMLError as e:
        out.error(f"Could not parse {path}: {e}")
    except ValidationError as e:
        out.error(
            f"Invalid graph description in {path}",
            issues=[
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ],
        )
    return None


def parse_locks(values: list[str]) -> dict[str, int]:
    """Parse NODE=INDEX pairs."""
    locks: dict[str, int] = {}
    for raw in values:
        node_id, sep, idx = raw.partition("=")
        if not sep or not node_id.strip():
            raise typer.BadParameter(f"Expected NODE=INDEX, got {raw!r}")
        try:
            locks[node_id.strip()] = int(idx)
        except ValueError:
            raise typer.BadParameter(f"Choice index must be an integer: {raw!r}")
    return locks


def _load_overrides(path: Path | None, out: Output) -> Overrides | None:
    if path is None:
        return Overrides()
    if not path.exists():
        out.error(f"File not found: {path}", exit_code=ExitCode.FILE_NOT_FOUND)
        return None
    try:
        with open(path) as f:
            return Overrides.model_validate(yaml.safe_load(f) or {})
    except (yaml.YAMLError, ValidationError) as e:
        out.error(f"Invalid overrides file {path}: {e}")
        return None


def _show_result(result: GenerationResult, out: Output, limit: int) -> None:
    report = result.report
    out.success(
        f"Design: {report.k} factors, {report.n_rows} rows "
        f"({report.base_size} base + {len(report.generators)} generated columns)"
    )
    q = report.quality
    out.text(
        f"  balance={q.balance:.3f}  max |r|={q.max_correlation:.3f}  "
        f"pair coverage={q.pair_coverage:.0%}"
    )
    if report.repaired_quality is not None:
        rq = report.repaired_quality
        out.text(
            f"  [dim]after repair: balance={rq.balance:.3f}  "
            f"max |r|={rq.max_correlation:.3f}  pair coverage={rq.pair_coverage:.0%}[/dim]"
        )

    rows = []
    for composite in [*result.composites, *result.pinned, *result.roster][:limit]:
        build = composite.build
        status = "[green]ok[/green]" if build.feasible else "[red]infeasible[/red]"
        rows.append(
            [
                composite.name,
                f"{build.points_spent}/{build.budget}",
                str(len(build.selected)),
                status,
            ]
        )
    if rows:
        out.blank()
        out.table("Builds", ["Name", "Points", "Nodes", "Status"], rows)

    total = len(result.composites) + len(result.pinned) + len(result.roster)
    if total > limit:
        out.text(f"  [dim]... {total - limit} more in the output file[/dim]")

    infeasible = len(result.builds) - len(result.feasible_builds)
    if infeasible:
        out.warning(
            f"{infeasible} of {len(result.builds)} design rows could not be repaired",
            suggestion="Run with --verbose to see the recorded errors",
        )


@app.command("generate")
def generate_command(
    graph_file: Path = typer.Argument(..., help="Graph description (.yaml or .json)"),
    budget: int | None = typer.Option(
        None, "--budget", "-b", help="Exact point budget (default: graph or config)"
    ),
    require: list[str] = typer.Option(
        [], "--require", "-r", help="Node or entry name that every build must take"
    ),
    exclude: list[str] = typer.Option(
        [], "--exclude", "-x", help="Node or entry name to keep out of builds"
    ),
    include: list[str] = typer.Option(
        [], "--include", "-i", help="Name to remove from the graph's exclusion list"
    ),
    lock: list[str] = typer.Option(
        [], "--lock", help="Branch choice lock as NODE=INDEX"
    ),
    unlock: list[str] = typer.Option(
        [], "--unlock", help="Branch choice node to free from any lock"
    ),
    overrides_file: Path | None = typer.Option(
        None, "--overrides", help="YAML file of override directives"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Where to write the JSON result"
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Worker processes for row repair"
    ),
    show: int = typer.Option(20, "--show", help="Builds to list in the summary"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs"),
):
    """
    Generate a covering set of builds for a graph.

    EXIT CODES:
        0 = Success
        1 = Validation error (malformed graph, budget or overrides)
        3 = File not found
        4 = Generation error
        5 = No feasible build produced

    EXAMPLES:
        buildspace generate tree.yaml --budget 34
        buildspace generate tree.yaml -b 34 -r "Fel Rush" -x "Glide"
        buildspace generate tree.yaml --lock 9001=1 -o builds.json
    """
    setup_logging(verbose=verbose, debug=debug)
    out = Output(console=console, json_mode=get_json_mode())
    start_time = time.time()
    out.blank()

    graph = load_graph(graph_file, out)
    if graph is None:
        raise typer.Exit(out.finish())

    base = _load_overrides(overrides_file, out)
    if base is None:
        raise typer.Exit(out.finish())
    overrides = base.merged(
        Overrides(
            require=require,
            exclude=exclude,
            include=include,
            lock_branch_choices=parse_locks(lock),
            unlock_branch_choices=unlock,
        )
    )

    config = copy.deepcopy(get_config())
    if workers is not None:
        config.generation.max_workers = workers

    try:
        if out.json_mode:
            result = generate_builds(graph, budget, overrides, config=config)
        else:
            from rich.progress import (
                BarColumn,
                Progress,
                SpinnerColumn,
                TaskProgressColumn,
                TextColumn,
            )

            with Progress(
                SpinnerColumn(),
                TextColumn("[cyan]Repairing design rows...[/cyan]"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Repairing", total=None)

                def on_progress(current: int, total: int):
                    progress.update(task, completed=current, total=total)

                result = generate_builds(
                    graph, budget, overrides, config=config, on_progress=on_progress
                )
    except StructuralInputError as e:
        out.structural_error(e)
        raise typer.Exit(out.finish())
    except (ValueError, RuntimeError) as e:
        out.error(f"Generation failed: {e}", exit_code=ExitCode.GENERATION_ERROR)
        raise typer.Exit(out.finish())

    output_path = output or Path(config.defaults.output_path)
    result.save_json(output_path)

    _show_result(result, out, show)
    out.set_data("result", format_result_for_json(result))
    out.set_data("output", str(output_path))
    extra = [*result.pinned, *result.roster]
    out.success(
        f"Saved {len(result.composites) + len(extra)} builds to {output_path} "
        f"[dim]({format_elapsed(time.time() - start_time)})[/dim]"
    )

    if not result.feasible_builds and not any(c.feasible for c in extra):
        out.error(
            "No feasible build was produced",
            exit_code=ExitCode.NO_FEASIBLE_BUILDS,
            suggestion="Check the budget against locked and required nodes",
        )
    raise typer.Exit(out.finish())
