"""CLI for the Product Scoring Engine.

Provides a command-line interface for authoring and checking category
configurations and for scoring product fact sheets against them.
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import find_config_file, load_config, save_default_config
from .engine import ScoringEngine
from .errors import ScorerError
from .explainer import ScoreExplainer
from .loader import list_categories, load_category_configuration, load_category_file
from .normalizer import coerce_number
from .schema import CategoryConfiguration, EvaluationResult, ProductFactSheet, RankingResult

console = Console()

categories_dir_option = click.option(
    "--categories-dir", "-d",
    type=click.Path(file_okay=False),
    help="Directory of category YAML files (default: bundled categories)"
)
context_option = click.option(
    "--context", "-x",
    "contexts",
    multiple=True,
    help="Context profile id (repeat to combine profiles)"
)
user_fact_option = click.option(
    "--user-fact", "-u",
    "user_facts",
    multiple=True,
    help="Fact about the user's situation (format: key=value, e.g. mains_voltage=110)"
)


@click.group()
@click.version_option(version=__version__, prog_name="product-scorer")
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Scorer configuration file (default: discovered scorer-config.yaml)"
)
def main(config_path: Optional[str]):
    """Contextual Product Scoring Engine.

    Scores product fact sheets against declarative category configurations
    and ranks them for a selected usage context.
    """
    # Load config if specified, otherwise try to find one
    path = Path(config_path) if config_path else find_config_file()
    if path:
        try:
            load_config(path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            console.print(f"[yellow]Warning:[/yellow] Could not load config {path}: {e}")


def parse_user_facts(pairs: tuple) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a (possibly nested) facts mapping.

    Numbers and true/false are converted; dotted keys build nested mappings.
    """
    facts: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected key=value, got '{pair}'", param_hint="--user-fact")
        key, raw = pair.split("=", 1)
        raw = raw.strip()
        value: Any = raw
        if raw.lower() in ("true", "false"):
            value = raw.lower() == "true"
        else:
            number = coerce_number(raw)
            if number is not None:
                value = int(number) if number.is_integer() and "." not in raw else number

        target = facts
        parts = key.strip().split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return facts


def load_products(path: str) -> list[ProductFactSheet]:
    """Read fact sheets from a JSON list or a ``{"products": [...]}`` document."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("products")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of products or a 'products' list")
    return [ProductFactSheet.model_validate(item) for item in data]


def output_json(model, out_path: Optional[str]):
    """Output a result model as JSON."""
    json_str = model.model_dump_json(indent=2)

    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)


@main.command("contexts")
@click.argument("category_id")
@categories_dir_option
def contexts_cmd(category_id: str, categories_dir: Optional[str]):
    """List the context profiles of a category.

    Example:
        product-scorer contexts smart_tv
    """
    try:
        category = load_category_configuration(category_id, categories_dir)
    except ScorerError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(f"\n[bold blue]{category.display_name}[/bold blue] (v{category.version})")
    if not category.contexts:
        console.print("[yellow]No context profiles defined.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Group")
    table.add_column("Re-weights")
    table.add_column("Excludes")

    for profile in category.contexts:
        reweighted = sorted(set(profile.weights) | set(profile.weight_multipliers))
        table.add_row(
            profile.id,
            profile.name,
            profile.group or "",
            ", ".join(reweighted),
            ", ".join(profile.mutually_exclusive_with),
        )
    console.print(table)

    if category.exclusion_groups:
        console.print("\n[bold]Exclusion groups:[/bold]")
        for group in category.exclusion_groups:
            console.print(f"  • {' | '.join(group)}")


@main.command("validate")
@click.argument("category_ids", nargs=-1)
@click.option(
    "--file", "-f",
    "files",
    multiple=True,
    type=click.Path(),
    help="Category YAML file to validate (repeatable)"
)
@categories_dir_option
def validate_cmd(category_ids: tuple, files: tuple, categories_dir: Optional[str]):
    """Validate category configurations.

    Without arguments, validates every category in the categories directory.

    Examples:
        product-scorer validate
        product-scorer validate smart_tv robot_vacuum
        product-scorer validate -f my_category.yaml
    """
    if not category_ids and not files:
        category_ids = tuple(list_categories(categories_dir))
        if not category_ids:
            console.print("[yellow]No category files found to validate[/yellow]")
            return

    all_valid = True

    for category_id in category_ids:
        try:
            category = load_category_configuration(category_id, categories_dir)
            console.print(f"[green]✓ Category valid: {category.category_id}[/green]")
        except ScorerError as e:
            console.print(f"[red]✗ Category invalid: {category_id}[/red]")
            console.print(f"  - {e}")
            all_valid = False

    for path in files:
        try:
            category = load_category_file(path)
            console.print(f"[green]✓ Category valid: {path} ({category.category_id})[/green]")
        except ScorerError as e:
            console.print(f"[red]✗ Category invalid: {path}[/red]")
            console.print(f"  - {e}")
            all_valid = False

    sys.exit(0 if all_valid else 1)


@main.command("evaluate")
@click.argument("category_id")
@click.option(
    "--products", "-p",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to products JSON file"
)
@click.option(
    "--product", "product_id",
    required=True,
    help="Id of the product to evaluate"
)
@context_option
@user_fact_option
@categories_dir_option
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def evaluate_cmd(
    category_id: str,
    products: str,
    product_id: str,
    contexts: tuple,
    user_facts: tuple,
    categories_dir: Optional[str],
    json_output: bool,
):
    """Evaluate a single product with a full breakdown.

    Examples:
        product-scorer evaluate smart_tv -p tvs.json --product tv-123
        product-scorer evaluate smart_tv -p tvs.json --product tv-123 -x gamer_ps5
    """
    facts = parse_user_facts(user_facts)
    try:
        category = load_category_configuration(category_id, categories_dir)
        sheets = load_products(products)
        sheet = next((s for s in sheets if s.product_id == product_id), None)
        if sheet is None:
            console.print(f"[red]Error: product not found: {product_id}[/red]")
            sys.exit(1)
        result = ScoringEngine(category).evaluate(sheet, contexts or None, facts)
    except (ScorerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        output_json(result, None)
    else:
        display_evaluation(result, sheet, category)


@main.command("rank")
@click.argument("category_id")
@click.option(
    "--products", "-p",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to products JSON file"
)
@context_option
@user_fact_option
@categories_dir_option
@click.option(
    "--out", "-o",
    type=click.Path(),
    help="Output file for JSON results"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def rank_cmd(
    category_id: str,
    products: str,
    contexts: tuple,
    user_facts: tuple,
    categories_dir: Optional[str],
    out: Optional[str],
    json_output: bool,
):
    """Rank products of a category for a context.

    Examples:
        product-scorer rank smart_tv -p tvs.json
        product-scorer rank smart_tv -p tvs.json -x bright_room -x gamer_ps5
        product-scorer rank smart_tv -p tvs.json -u mains_voltage=110 -j
    """
    facts = parse_user_facts(user_facts)
    try:
        category = load_category_configuration(category_id, categories_dir)
        sheets = load_products(products)
        ranking = ScoringEngine(category).rank(sheets, contexts or None, facts)
    except (ScorerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        output_json(ranking, out)
    else:
        display_ranking(ranking, category)
        if out:
            output_json(ranking, out)
            console.print(f"\n[green]Results saved to {out}[/green]")


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="scorer-config.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default scorer configuration file.

    Example:
        product-scorer init-config --out my-config.yaml
    """
    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
    except OSError as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Config file created: {out}")
    console.print("\nThis file configures:")
    console.print("  • display - Range and rounding of the public score")
    console.print("  • explanation - Strength/weakness thresholds of explanations")
    console.print("  • context_combination - How weights merge when several contexts are selected")
    console.print("  • categories_dir - Where category YAML files are read from")
    console.print("\nThe scorer will look for config in this order:")
    console.print("  1. PRODUCT_SCORER_CONFIG environment variable")
    console.print("  2. ./scorer-config.yaml (current directory)")
    console.print("  3. ~/.config/product-scorer/config.yaml")


def _context_title(context_ids: tuple, category: CategoryConfiguration) -> str:
    if not context_ids:
        return "General use"
    names = []
    for cid in context_ids:
        profile = category.get_context(cid)
        names.append(profile.name if profile else cid)
    return " + ".join(names)


def display_evaluation(
    result: EvaluationResult,
    product: ProductFactSheet,
    category: CategoryConfiguration,
):
    """Display a single evaluation in formatted text."""
    explanation = ScoreExplainer().explain(result, category)
    title = product.name or product.product_id

    if result.is_fatally_constrained:
        console.print(Panel(
            f"[bold]{title}[/bold]\n\n"
            f"Context: {_context_title(result.context_ids, category)}\n"
            f"[red]{explanation.headline}[/red]",
            title="Evaluation",
        ))
        console.print("\n[bold]Disqualified because:[/bold]")
        for reason in explanation.disqualifications:
            console.print(f"  [red]✗[/red] {reason}")
        return

    console.print(Panel(
        f"[bold]{title}[/bold]\n\n"
        f"Context: {_context_title(result.context_ids, category)}\n"
        f"Score: [bold cyan]{result.score}[/bold cyan] "
        f"(utility {result.utility:.4f}, {result.aggregation.value})",
        title="Evaluation",
    ))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Attribute", style="cyan")
    table.add_column("Raw value")
    table.add_column("Utility", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Contribution", justify="right")

    for item in result.breakdown:
        raw = "-" if item.raw_value is None else str(item.raw_value)
        if item.imputed:
            raw += " [dim](imputed)[/dim]"
        table.add_row(
            item.label,
            raw,
            f"{item.utility:.3f}",
            f"{item.weight:.3f}",
            f"{item.contribution:.3f}",
        )
    console.print(table)

    if result.applied_penalties:
        console.print("\n[bold]Penalties:[/bold]")
        for penalty in result.applied_penalties:
            console.print(f"  [yellow]•[/yellow] {penalty.reason} (x{penalty.multiplier:g}, {penalty.severity.value})")

    if explanation.strengths:
        console.print("\n[bold]Strengths:[/bold]")
        for item in explanation.strengths:
            console.print(f"  [green]•[/green] {item}")

    if explanation.weaknesses:
        console.print("\n[bold]Weaknesses:[/bold]")
        for item in explanation.weaknesses:
            console.print(f"  [yellow]•[/yellow] {item}")


def display_ranking(ranking: RankingResult, category: CategoryConfiguration):
    """Display a ranking in formatted text."""
    summary = ScoreExplainer().summarize_ranking(ranking)

    console.print(Panel(
        f"[bold]{category.display_name}[/bold]\n\n"
        f"Context: {_context_title(ranking.context_ids, category)}\n"
        f"Top pick: [bold cyan]{summary.top_pick or 'None'}[/bold cyan]\n"
        f"Ranked: {summary.ranked_count} | Excluded: {summary.excluded_count} | "
        f"Unscorable: {summary.unscorable_count}",
        title="Ranking Summary",
    ))

    if summary.key_drivers:
        console.print("\n[bold]Key Drivers:[/bold]")
        for driver in summary.key_drivers:
            console.print(f"  [green]•[/green] {driver}")

    if ranking.ranked:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Product", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Penalties")

        for entry in ranking.ranked:
            penalties = ", ".join(p.constraint_id for p in entry.result.applied_penalties)
            table.add_row(
                str(entry.rank),
                entry.product.name or entry.product.product_id,
                f"{entry.result.score}",
                penalties,
            )
        console.print()
        console.print(table)

    if ranking.excluded:
        console.print("\n[bold]Excluded:[/bold]")
        for entry in ranking.excluded:
            reasons = "; ".join(r.reason for r in entry.result.fatal_reasons)
            console.print(f"  [red]✗[/red] {entry.product.name or entry.product.product_id}: {reasons}")

    if ranking.unscorable:
        console.print("\n[bold]Unscorable:[/bold]")
        for entry in ranking.unscorable:
            console.print(f"  [yellow]?[/yellow] {entry.message}")


if __name__ == "__main__":
    main()
