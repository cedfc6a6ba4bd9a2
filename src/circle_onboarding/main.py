"""
Circle Onboarding - CLI Entry Point.

Usage:
    circle-onboarding steps answers.json      Show the step sequence for saved answers
    circle-onboarding progress answers.json   Show completion percent
    circle-onboarding check answers.json      Validate and preview the submission payload
    circle-onboarding health                  Check configuration
"""

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="circle-onboarding",
    help="Circle onboarding wizard tools.",
    add_completion=False,
)
console = Console()


def _load_answers(path: Path) -> dict:
    """Read answers from a JSON file: either a plain answers object or a saved envelope."""
    from circle_onboarding.state import SessionRecord

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]❌ Could not read {path}: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(raw, dict) and "data" in raw and "step_index" in raw:
        try:
            return SessionRecord.from_envelope(raw).data
        except ValueError as e:
            console.print(f"[red]❌ Invalid envelope in {path}: {e}[/red]")
            raise typer.Exit(1)

    if not isinstance(raw, dict):
        console.print(f"[red]❌ {path} must contain a JSON object[/red]")
        raise typer.Exit(1)
    return raw


@app.callback()
def main() -> None:
    from circle_onboarding.config import settings

    logging.basicConfig(level=settings.log_level)


@app.command()
def steps(
    data_file: Path = typer.Argument(..., help="JSON file with onboarding answers"),
) -> None:
    """Show the effective step sequence and which steps are complete."""
    from circle_onboarding.steps import is_step_complete, missing_fields, sequence

    data = _load_answers(data_file)

    table = Table(title="Onboarding Steps")
    table.add_column("#", justify="right")
    table.add_column("Step", no_wrap=True)
    table.add_column("Group", no_wrap=True)
    table.add_column("Status")
    table.add_column("Missing", style="dim")

    for i, step in enumerate(sequence(data)):
        done = is_step_complete(step, data)
        table.add_row(
            str(i),
            step.label,
            step.group,
            "✅" if done else "…",
            ", ".join(missing_fields(step, data)),
        )

    console.print(table)


@app.command()
def progress(
    data_file: Path = typer.Argument(..., help="JSON file with onboarding answers"),
) -> None:
    """Show completion percent."""
    from circle_onboarding.progress import completed_field_count, percent
    from circle_onboarding.steps import required_field_keys

    data = _load_answers(data_file)
    console.print(
        f"[bold]{percent(data)}%[/bold] complete "
        f"[dim]({completed_field_count(data)}/{len(required_field_keys())} required fields)[/dim]"
    )


@app.command()
def check(
    data_file: Path = typer.Argument(..., help="JSON file with onboarding answers"),
) -> None:
    """Validate answers and preview the payload that would be submitted."""
    from circle_onboarding.payload import PayloadError, build_payload
    from circle_onboarding.steps import incomplete_steps

    data = _load_answers(data_file)

    incomplete = incomplete_steps(data)
    if incomplete:
        console.print("[yellow]⚠️  Incomplete steps:[/yellow]")
        for step in incomplete:
            console.print(f"   • {step.id} ({step.label})")
        raise typer.Exit(1)

    try:
        payload = build_payload(data)
    except PayloadError as e:
        console.print(f"[red]❌ Invalid answers ({', '.join(e.step_ids)}):[/red]")
        for error in e.errors:
            console.print(f"   • {error}")
        raise typer.Exit(1)

    console.print("✅ Ready to submit")
    console.print("[dim]Equipment ids are resolved against the catalog at submission.[/dim]")
    console.print_json(payload.to_json())


@app.command()
def health() -> None:
    """Check configuration."""
    from circle_onboarding.config import get_settings

    console.print("\n[bold]Circle Onboarding Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.onboarding_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Debounce: {settings.durable_write_debounce_seconds}s")

        if settings.supabase_url.startswith("https://"):
            console.print("✅ Supabase URL configured")
        else:
            console.print("❌ Supabase URL missing or invalid")

        if settings.supabase_service_role_key:
            console.print("✅ Supabase service key configured")
        else:
            console.print("❌ Supabase service key missing")

        console.print(f"   Local cache: {settings.local_cache_dir}")

        if settings.supabase_configured:
            console.print("\n[green]All checks passed![/green]")
        else:
            console.print("\n[yellow]Durable channel unavailable; only local caching will work.[/yellow]")

    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from circle_onboarding import __version__

    console.print(f"Circle Onboarding version {__version__}")


if __name__ == "__main__":
    app()
