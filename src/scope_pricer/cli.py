"""CLI for the Scope Pricing Engine.

Provides command-line interface for pricing scope files, inspecting the
rate tables and working with the audit log.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .audit import InMemoryAuditStore, JsonlAuditStore
from .classifier import EffortClassifier
from .config import PricingConfig, find_config_file, get_config, load_config
from .engine import PricingEngine, load_scope, price_for_badge, validate_scope
from .errors import PricingError
from .explainer import BreakdownExplainer
from .multiplier import MultiplierComposer
from .rules import RULES_VERSION, WORK_UNIT_MAPPINGS
from .schema import AuditEntry, BadgeLevel, PriceEstimate

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _pricing_config(config_path: Optional[str]) -> PricingConfig:
    """Resolve the configuration: explicit path, then discovered file, then defaults."""
    if config_path:
        return load_config(Path(config_path))
    found = find_config_file()
    if found:
        return load_config(found)
    return get_config()


def _money(config: PricingConfig, amount: float) -> str:
    return f"{config.rates.currency} {amount:,.0f}"


@click.group()
@click.version_option(version="1.0.0", prog_name="scope-pricer")
def main():
    """Deterministic Scope Pricing Engine.

    Converts a project scope into effort units, applies bounded difficulty
    adjustments and returns three capped price tiers with a full audit trail.
    """
    pass


@main.command("estimate")
@click.option(
    "--scope", "-s",
    required=True,
    type=click.Path(exists=True),
    help="Path to scope JSON file"
)
@click.option(
    "--actor", "-a",
    default="cli",
    help="Identity recorded in the audit entry"
)
@click.option(
    "--at", "reference_time",
    help="Reference time for deadline urgency (ISO 8601, default: now)"
)
@click.option(
    "--audit-log",
    type=click.Path(),
    help="Append the audit entry to this JSONL file (default: in-memory only)"
)
@click.option(
    "--badge", "-b",
    type=click.Choice([b.value for b in BadgeLevel], case_sensitive=False),
    help="Show the price a freelancer with this badge is offered"
)
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True),
    help="Path to pricing configuration YAML"
)
@click.option(
    "--out", "-o",
    type=click.Path(),
    help="Output file for JSON results (default: stdout)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show effort units and debug logging"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def estimate_cmd(
    scope: str,
    actor: str,
    reference_time: Optional[str],
    audit_log: Optional[str],
    badge: Optional[str],
    config_path: Optional[str],
    out: Optional[str],
    verbose: bool,
    json_output: bool,
):
    """Price a scope file.

    Examples:
        scope-pricer estimate -s scope.json
        scope-pricer estimate -s scope.json --at 2024-06-01T09:00:00Z -v
        scope-pricer estimate -s scope.json --audit-log audit.jsonl --badge HIGH
    """
    _setup_logging(verbose)

    try:
        config = _pricing_config(config_path)
        store = JsonlAuditStore(Path(audit_log)) if audit_log else InMemoryAuditStore()
        engine = PricingEngine(config, store)
        scope_data = load_scope(scope)

        if json_output:
            estimate = engine.estimate(scope_data, actor, reference_time=reference_time)
            output_json(estimate, out)
            return

        console.print("\n[bold blue]Scope Pricing Engine[/bold blue]")
        console.print(f"Scope: {scope}")
        console.print(f"Rules: {RULES_VERSION} | Config: {config.fingerprint()}")
        console.print()

        with console.status("Pricing scope..."):
            estimate = engine.estimate(scope_data, actor, reference_time=reference_time)

        display_estimate(estimate, config, verbose)
        if badge:
            price = price_for_badge(estimate, badge)
            console.print(f"\n[bold]{badge.upper()} badge price:[/bold] {_money(config, price)}")
        if audit_log:
            console.print(f"\n[dim]Audit entry {estimate.audit_id} appended to {audit_log}[/dim]")
        if out:
            output_json(estimate, out)
            console.print(f"\n[green]Results saved to {out}[/green]")

    except PricingError as e:
        stage = f" at {e.stage}" if e.stage else ""
        console.print(f"[red]Error ({e.kind.value}{stage}):[/red] {e.reason}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("validate")
@click.option(
    "--scope", "-s",
    required=True,
    type=click.Path(),
    help="Path to scope JSON file"
)
def validate_cmd(scope: str):
    """Validate a scope file without pricing it.

    Example:
        scope-pricer validate -s scope.json
    """
    if not Path(scope).exists():
        console.print(f"[red]✗ Scope file not found: {scope}[/red]")
        sys.exit(1)

    is_valid, issues = validate_scope(scope)
    if is_valid:
        console.print(f"[green]✓ Scope valid: {scope}[/green]")
        for issue in issues:
            console.print(f"  [yellow]•[/yellow] {issue}")
    else:
        console.print(f"[red]✗ Scope invalid: {scope}[/red]")
        for issue in issues:
            console.print(f"  - {issue}")

    sys.exit(0 if is_valid else 1)


@main.command("tables")
@click.option(
    "--field", "-f",
    help="Show the work-unit table for one field"
)
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True),
    help="Path to pricing configuration YAML"
)
def tables_cmd(field: Optional[str], config_path: Optional[str]):
    """Show base rates and work-unit mappings.

    Examples:
        scope-pricer tables
        scope-pricer tables --field "seo"
    """
    try:
        config = _pricing_config(config_path)

        if field:
            canonical = EffortClassifier(config.effort).normalize_field(field)
            rows = [m for m in WORK_UNIT_MAPPINGS if m.field == canonical]
            if not rows:
                console.print(f"[yellow]No work-unit mappings for field: {field}[/yellow]")
                return

            rate = config.rates.base_rates.get(canonical)
            rate_text = _money(config, rate) if rate is not None else "average"
            table = Table(title=f"{canonical} ({rate_text} per EU)")
            table.add_column("Item type", style="cyan")
            table.add_column("Complexity")
            table.add_column("EU", justify="right")
            for mapping in rows:
                table.add_row(mapping.item_type, mapping.complexity.value, f"{mapping.eu_value:g}")
            console.print(table)
            return

        counts: dict[str, int] = {}
        for mapping in WORK_UNIT_MAPPINGS:
            counts[mapping.field] = counts.get(mapping.field, 0) + 1

        table = Table(title=f"Base Rates ({config.rates.currency} per EU)")
        table.add_column("Field", style="cyan")
        table.add_column("Rate", justify="right")
        table.add_column("Mappings", justify="right")
        for name, rate in config.rates.base_rates.items():
            table.add_row(name, f"{rate:,.0f}", str(counts.get(name, 0)))
        console.print(table)

        console.print(
            f"\nGlobal band: {_money(config, config.caps.min_price)} - "
            f"{_money(config, config.caps.max_price)}"
        )
        console.print(
            f"Tier ratios: {config.tiers.low_ratio:g} / {config.tiers.medium_ratio:g} / "
            f"{config.tiers.high_ratio:g} (rounded to {config.tiers.rounding_increment:g})"
        )
        console.print(f"Multiplier cap: {config.difficulty.multiplier_cap:g}")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("audit")
@click.option(
    "--audit-log",
    required=True,
    type=click.Path(exists=True),
    help="Path to audit JSONL file"
)
@click.option(
    "--id", "entry_id",
    help="Show details for a specific audit entry"
)
@click.option(
    "--scope-id",
    help="Only list entries for this scope"
)
def audit_cmd(audit_log: str, entry_id: Optional[str], scope_id: Optional[str]):
    """List audit entries or show one in detail.

    Examples:
        scope-pricer audit --audit-log audit.jsonl
        scope-pricer audit --audit-log audit.jsonl --id 3f2a...
    """
    try:
        store = JsonlAuditStore(Path(audit_log))

        if entry_id:
            entry = store.get(entry_id)
            if entry is None:
                console.print(f"[red]Audit entry not found: {entry_id}[/red]")
                sys.exit(1)
            display_audit_entry(entry)
            return

        entries = store.for_scope(scope_id) if scope_id else list(store)
        if not entries:
            console.print("[yellow]No audit entries found.[/yellow]")
            return

        table = Table(title=f"Audit Entries ({len(entries)})")
        table.add_column("Entry", style="cyan")
        table.add_column("Recorded")
        table.add_column("Actor")
        table.add_column("Scope")
        table.add_column("Medium", justify="right")
        table.add_column("Rules")
        for entry in entries:
            table.add_row(
                entry.entry_id,
                entry.recorded_at.strftime("%Y-%m-%d %H:%M:%S"),
                entry.actor,
                entry.scope_id or "-",
                f"{entry.final_tiers.medium:,.0f}",
                entry.rules_version,
            )
        console.print(table)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("replay")
@click.option(
    "--audit-log",
    required=True,
    type=click.Path(exists=True),
    help="Path to audit JSONL file"
)
@click.option(
    "--id", "entry_id",
    required=True,
    help="Audit entry to replay"
)
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True),
    help="Path to pricing configuration YAML"
)
def replay_cmd(audit_log: str, entry_id: str, config_path: Optional[str]):
    """Recompute an audited estimate and check it still matches.

    Example:
        scope-pricer replay --audit-log audit.jsonl --id 3f2a...
    """
    try:
        entry = JsonlAuditStore(Path(audit_log)).get(entry_id)
        if entry is None:
            console.print(f"[red]Audit entry not found: {entry_id}[/red]")
            sys.exit(1)

        engine = PricingEngine(_pricing_config(config_path), InMemoryAuditStore())
        mismatches = engine.verify(entry)

        if not mismatches:
            console.print(f"[green]✓ Entry {entry_id} reproduces exactly[/green]")
            return

        console.print(f"[red]✗ Entry {entry_id} no longer reproduces:[/red]")
        for mismatch in mismatches:
            console.print(f"  - {mismatch}")
        if entry.rules_version != RULES_VERSION:
            console.print(f"[dim]Recorded with rules {entry.rules_version}, current {RULES_VERSION}[/dim]")
        sys.exit(1)

    except PricingError as e:
        console.print(f"[red]Error ({e.kind.value}):[/red] {e.reason}")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def display_estimate(estimate: PriceEstimate, config: PricingConfig, verbose: bool):
    """Display an estimate in formatted text."""
    breakdown = estimate.breakdown
    drivers = breakdown.complexity_drivers or ["Standard complexity"]

    console.print(Panel(
        f"[bold]{estimate.scope_id or 'Unnamed scope'}[/bold]\n\n"
        f"Scope size: [bold cyan]{breakdown.scope_size}[/bold cyan]\n"
        f"Total work units: {estimate.twu:g} | Multiplier: {estimate.mp:g}\n"
        f"Base project value: {_money(config, estimate.bpv)}",
        title="Estimate Summary",
    ))

    table = Table(title="Price Tiers")
    table.add_column("Tier", style="cyan")
    table.add_column("Price", justify="right", style="bold")
    table.add_column("Before caps", justify="right")
    table.add_column("Capped")
    capping = estimate.capping
    for name, final, raw, capped in (
        ("LOW", estimate.final_low, estimate.low, capping.low_capped),
        ("MEDIUM", estimate.final_medium, estimate.medium, capping.medium_capped),
        ("HIGH", estimate.final_high, estimate.high, capping.high_capped),
    ):
        marker = " (recommended)" if name == breakdown.recommended.value else ""
        table.add_row(
            name + marker,
            _money(config, final),
            _money(config, raw),
            "[yellow]yes[/yellow]" if capped else "no",
        )
    console.print(table)

    console.print("\n[bold]Complexity Drivers:[/bold]")
    for driver in drivers:
        console.print(f"  [green]•[/green] {driver}")

    if verbose:
        deltas = MultiplierComposer(config.difficulty).deltas(estimate.difficulty_factors)
        for name, percent in deltas.items():
            console.print(f"  [dim]{name}: +{percent:g}%[/dim]")

        fields = Table(title="Field Aggregation")
        fields.add_column("Field", style="cyan")
        fields.add_column("TWU", justify="right")
        fields.add_column("Rate", justify="right")
        fields.add_column("Value", justify="right")
        fields.add_column("Rate source")
        for agg in estimate.field_aggregations:
            fields.add_row(
                agg.field, f"{agg.twu:g}", f"{agg.rate:,.0f}",
                f"{agg.field_value:,.0f}", agg.rate_source.value,
            )
        console.print(fields)

        console.print("\n[bold]Effort Units:[/bold]")
        for unit in estimate.effort_units:
            level = unit.classification.match_level.value if unit.classification else "-"
            console.print(f"  {unit.eu_value:g} EU  {unit.item_description} [dim]({level})[/dim]")

    if estimate.fallback_count:
        console.print(
            f"\n[yellow]⚠ {estimate.fallback_count} scope line(s) priced with the "
            f"global fallback[/yellow]"
        )

    if any((capping.low_capped, capping.medium_capped, capping.high_capped)):
        console.print(
            f"[dim]Prices clamped to {_money(config, estimate.min_cap)} - "
            f"{_money(config, estimate.max_cap)}[/dim]"
        )


def display_audit_entry(entry: AuditEntry):
    """Display one audit entry as a tree."""
    tree = Tree(f"[bold cyan]Audit entry {entry.entry_id}[/bold cyan]")

    identity = tree.add("[bold]Run[/bold]")
    identity.add(f"Actor: {entry.actor}")
    identity.add(f"Recorded: {entry.recorded_at.isoformat()}")
    identity.add(f"Reference time: {entry.reference_time.isoformat()}")
    identity.add(f"Scope: {entry.scope_id or '-'} ({entry.scope.field})")
    identity.add(f"Rules: {entry.rules_version} | Config: {entry.config_fingerprint}")

    effort = tree.add(f"[bold]Effort[/bold] (TWU {entry.twu:g}, MP {entry.mp:g})")
    for unit in entry.effort_units:
        effort.add(f"{unit.eu_value:g} EU  {unit.field}: {unit.item_description}")

    fields = tree.add(f"[bold]Fields[/bold] (BPV {entry.bpv:,.0f})")
    for agg in entry.field_aggregations:
        fields.add(f"{agg.field}: {agg.twu:g} x {agg.mp:g} x {agg.rate:,.0f} = {agg.field_value:,.0f}")

    prices = tree.add("[bold]Tiers[/bold]")
    prices.add(
        f"Raw: {entry.raw_tiers.low:,.0f} / {entry.raw_tiers.medium:,.0f} / {entry.raw_tiers.high:,.0f}"
    )
    prices.add(
        f"Final: {entry.final_tiers.low:,.0f} / {entry.final_tiers.medium:,.0f} / "
        f"{entry.final_tiers.high:,.0f}"
    )

    console.print(tree)
    console.print()
    console.print(BreakdownExplainer().format_breakdown(entry.breakdown))


def output_json(estimate: PriceEstimate, out_path: Optional[str]):
    """Output estimate as JSON."""
    json_str = estimate.model_dump_json(indent=2)

    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="pricing-config.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default pricing configuration file.

    Example:
        scope-pricer init-config --out my-config.yaml
    """
    from .config import save_default_config

    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
        console.print(f"[green]✓[/green] Config file created: {out}")
        console.print("\nThis file configures:")
        console.print("  • rates - Base rate per effort unit for each field")
        console.print("  • tiers - Tier ratios and rounding increment")
        console.print("  • caps - Global price floor and ceiling")
        console.print("  • effort - Per-item caps and fallback effort")
        console.print("  • difficulty - Adjustment percentages and detection keywords")
        console.print("\nThe pricer will look for config in this order:")
        console.print("  1. SCOPE_PRICER_CONFIG environment variable")
        console.print("  2. ./pricing-config.yaml (current directory)")
        console.print("  3. ~/.config/scope-pricer/config.yaml")
    except Exception as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
