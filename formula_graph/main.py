import json
import logging
from pathlib import Path
from typing import List, Optional

import coloredlogs
import typer
from tqdm import tqdm

from .diagram import DIRECTIONS
from .llm_client import LLMClient, fallback_explanation
from .mermaid import to_mermaid, wrap_in_markdown
from .models import ROLE_LABELS, ROLES, Formula, role_title
from .pipeline import (
    PipelineConfig,
    analyze_dependencies,
    analyze_roles,
    analyze_variables,
    extract_formulas,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="formula-graph",
    help="Formula Graph - Extract formulas from papers and map how they depend on each other"
)


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug logging"
    )
):
    """Extract formulas, roles, variables and dependencies from paper text."""
    coloredlogs.install(
        level="DEBUG" if verbose else "WARNING",
        logger=logging.getLogger("formula_graph"),
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def extract(
    paths: List[Path] = typer.Argument(
        ...,
        help="One or more plain-text papers (.txt, .md, .tex)"
    ),
    no_inline: bool = typer.Option(
        False,
        "--no-inline",
        help="Skip inline formulas"
    ),
    numbered_only: bool = typer.Option(
        False,
        "--numbered-only",
        help="Keep only formulas with an equation number"
    ),
    section: Optional[str] = typer.Option(
        None,
        "--section", "-s",
        help="Keep formulas whose section name contains this text"
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print results as JSON"
    )
):
    """
    Extract and classify the formulas of each document.

    Examples:
        formula-graph extract paper.txt
        formula-graph extract paper.txt other.md --numbered-only --json
    """
    config = PipelineConfig(
        include_inline=not no_inline,
        numbered_only=numbered_only,
        filter_section=section,
    )

    failed = []
    for path in tqdm(paths, desc="Extracting formulas", unit="doc", disable=json_output or len(paths) < 2):
        result = extract_formulas(path, config)
        if not result.success:
            failed.append((path, result.error))
        if json_output:
            typer.echo(_dumps(result.to_dict()))
            continue
        if result.success:
            _print_extraction(path, result)

    _finish(failed)


@app.command()
def variables(
    path: Path = typer.Argument(
        ...,
        help="Plain-text paper (.txt, .md, .tex)"
    ),
    symbols: Optional[List[str]] = typer.Option(
        None,
        "--symbol",
        help="Only report these symbols (repeatable)"
    ),
    section: Optional[str] = typer.Option(
        None,
        "--section", "-s",
        help="Keep formulas whose section name contains this text"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Print the variable diagram as Mermaid")
):
    """Show where each symbol is defined and used."""
    config = PipelineConfig(filter_section=section, filter_symbols=symbols or None)
    extraction = extract_formulas(path, config)
    result = analyze_variables(extraction, config)

    if json_output:
        typer.echo(_dumps(result.to_dict()))
    elif mermaid and result.graph is not None:
        typer.echo(wrap_in_markdown(to_mermaid(result.graph)))
    elif result.success:
        stats = result.stats
        typer.echo(f"Variables: {stats.total_variables} "
                   f"(defined: {stats.defined_variables}, undefined: {stats.undefined_variables})")
        if stats.most_used_variables:
            typer.echo(f"Most used: {', '.join(stats.most_used_variables)}")
        typer.echo("")
        for usage in result.variables:
            defined = ", ".join(usage.defined_in) or "-"
            typer.echo(f"  {usage.symbol:<10} defined in: {defined:<12} used in: {', '.join(usage.used_in)}")

    _finish([] if result.success else [(path, result.error)])


@app.command()
def dependencies(
    paths: List[Path] = typer.Argument(
        ...,
        help="One or more plain-text papers (.txt, .md, .tex)"
    ),
    direction: str = typer.Option(
        "TB",
        "--direction", "-d",
        help="Diagram direction (TB, BT, LR or RL)"
    ),
    section: Optional[str] = typer.Option(
        None,
        "--section", "-s",
        help="Keep formulas whose section name contains this text"
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Do not ask the LLM for additional dependencies"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="LLM model (default: FORMULA_GRAPH_MODEL or gpt-4o)"
    ),
    max_inference: int = typer.Option(
        20,
        "--max-inference",
        help="Only ask the LLM when a document has at most this many formulas"
    ),
    timeout: float = typer.Option(
        30.0,
        "--timeout",
        help="Seconds to wait for the LLM"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Print the dependency diagram as Mermaid")
):
    """
    Infer dependencies between formulas and draw the dependency graph.

    Examples:
        formula-graph dependencies paper.txt --mermaid
        formula-graph dependencies paper.txt --offline --direction LR --json
    """
    if direction not in DIRECTIONS:
        typer.echo(f"Error: Invalid direction '{direction}'. Use one of: {', '.join(DIRECTIONS)}", err=True)
        raise typer.Exit(1)

    config = PipelineConfig(
        filter_section=section,
        max_dependency_inference_size=max_inference,
        inference_timeout=timeout,
        direction=direction,
    )
    client = _load_llm(offline, model, timeout=timeout)
    collaborator = client.propose_dependencies if client else None

    failed = []
    for path in tqdm(paths, desc="Analyzing dependencies", unit="doc", disable=json_output or len(paths) < 2):
        result = analyze_dependencies(extract_formulas(path, config), config, collaborator)
        if not result.success:
            failed.append((path, result.error))

        if json_output:
            typer.echo(_dumps(result.to_dict()))
            continue
        if not result.success:
            continue
        if mermaid:
            typer.echo(wrap_in_markdown(to_mermaid(result.graph)))
            continue

        analysis = result.analysis
        typer.echo(f"\n{path}")
        typer.echo(f"  Formulas: {analysis.total_formulas}  Dependencies: {analysis.total_dependencies}")
        typer.echo(f"  Roots:  {', '.join(analysis.root_formulas) or '-'}")
        typer.echo(f"  Leaves: {', '.join(analysis.leaf_formulas) or '-'}")
        for dep in result.dependencies:
            shared = f" [{', '.join(dep.shared_variables)}]" if dep.shared_variables else ""
            typer.echo(f"  {dep.source} -> {dep.target} ({dep.type}){shared}")
        if result.collaborator_error:
            typer.echo(f"  Note: {result.collaborator_error}")

    _finish(failed)


@app.command()
def roles(
    path: Path = typer.Argument(
        ...,
        help="Plain-text paper (.txt, .md, .tex)"
    ),
    section: Optional[str] = typer.Option(
        None,
        "--section", "-s",
        help="Keep formulas whose section name contains this text"
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Describe the flow without the LLM"
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="LLM model"),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Print the role flow diagram as Mermaid")
):
    """Group formulas by rhetorical role and describe the paper's logical flow."""
    config = PipelineConfig(filter_section=section)
    client = _load_llm(offline, model)
    result = analyze_roles(
        extract_formulas(path, config),
        config,
        flow_collaborator=client.describe_role_flow if client else None,
    )

    if json_output:
        typer.echo(_dumps(result.to_dict()))
    elif mermaid and result.graph is not None:
        typer.echo(wrap_in_markdown(to_mermaid(result.graph)))
    elif result.success:
        typer.echo(f"Dominant roles: {', '.join(role_title(r) for r in result.dominant_roles) or '-'}")
        typer.echo(f"\n{result.logical_flow}\n")
        for role in ROLES:
            members = result.role_groups.get(role, [])
            if members:
                typer.echo(f"  {ROLE_LABELS[role]}: {', '.join(f.id for f in members)}")

    _finish([] if result.success else [(path, result.error)])


@app.command()
def explain(
    path: Path = typer.Argument(
        ...,
        help="Plain-text paper (.txt, .md, .tex)"
    ),
    formula_id: Optional[str] = typer.Argument(
        None,
        help="Formula ID or equation number (default: first formula)"
    ),
    offline: bool = typer.Option(False, "--offline", help="Explain without the LLM"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="LLM model"),
    language: str = typer.Option("en", "--language", "-l", help="Explanation language (en or ko)"),
    detail: str = typer.Option(
        "detailed",
        "--detail",
        help="Detail level (brief, detailed or educational)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON")
):
    """Explain a single formula."""
    extraction = extract_formulas(path)
    if not extraction.success:
        _finish([(path, extraction.error)])
    if not extraction.formulas:
        _finish([(path, "No formulas found")])

    formula = _find_formula(extraction.formulas, formula_id)
    if formula is None:
        available = ", ".join(f.id for f in extraction.formulas[:10])
        _finish([(path, f"Formula not found: {formula_id}. Available IDs: {available}")])

    client = _load_llm(offline, model)
    explanation = None
    if client is not None:
        try:
            explanation = client.explain_formula(formula, language=language, detail_level=detail)
        except Exception as e:
            logger.warning("LLM explanation failed, using offline explanation: %s", e)
    if explanation is None:
        explanation = fallback_explanation(formula)

    if json_output:
        typer.echo(_dumps(explanation.to_dict()))
        return

    typer.echo(f"{formula.id}: {formula.latex}")
    typer.echo(f"Role: {role_title(formula.role)}  Section: {formula.section}")
    typer.echo(f"\n{explanation.summary}")
    if explanation.meaning:
        typer.echo(f"\n{explanation.meaning}")
    if explanation.intuition:
        typer.echo(f"\nIntuition: {explanation.intuition}")
    if explanation.components:
        typer.echo("\nComponents:")
        for component in explanation.components:
            typer.echo(f"  {component.symbol}: {component.explanation}")


def _load_llm(offline: bool, model: Optional[str], timeout: Optional[float] = None) -> Optional[LLMClient]:
    if offline:
        return None
    try:
        return LLMClient(model=model, timeout=timeout)
    except ValueError as e:
        logger.warning("%s Continuing without LLM.", e)
        return None


def _find_formula(formulas: List[Formula], formula_id: Optional[str]) -> Optional[Formula]:
    if not formula_id:
        return formulas[0]
    wanted_number = formula_id if formula_id.startswith("(") else f"({formula_id})"
    for formula in formulas:
        if formula.id == formula_id or formula.number == wanted_number:
            return formula
    return None


def _print_extraction(path: Path, result) -> None:
    stats = result.stats
    typer.echo(f"\n{path}: {result.paper_title}")
    typer.echo(f"  Formulas: {stats.total_formulas}  "
               f"Numbered: {stats.numbered_equations}  Inline: {stats.inline_formulas}")
    roles_line = ", ".join(f"{role}={count}" for role, count in stats.by_role.items() if count)
    typer.echo(f"  Roles: {roles_line or '-'}")
    for formula in result.formulas:
        number = f" {formula.number}" if formula.number else ""
        latex = formula.latex if len(formula.latex) <= 60 else formula.latex[:60] + "..."
        typer.echo(f"  {formula.id}{number} [{formula.role} {formula.confidence:.1f}] {latex}")


def _dumps(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _finish(failed) -> None:
    if not failed:
        return
    for path, error in failed:
        typer.echo(f"✗ {path}: {error}", err=True)
    raise typer.Exit(1)


def main():
    app()


if __name__ == "__main__":
    main()
