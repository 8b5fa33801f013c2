# ABOUTME: Replays a historical attempt log through the adaptive engine offline.
# ABOUTME: Reports how well pre-answer success predictions match observed outcomes.

"""
Replay History Script

Feeds logged attempts (user_id, topic_id, correct, time_taken_seconds,
difficulty, timestamp) through a fresh engine in timestamp order and scores
the predicted success rate recorded before every answer.

Usage:
    python scripts/replay_history.py --events-path data/attempts.csv
    python scripts/replay_history.py --events-path data/attempts.parquet --config configs/adaptive_engine.yaml
"""

from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.table import Table

from src.adaptive.replay import replay_attempts
from src.common.config import EngineConfig, load_engine_config
from src.common.evaluation import evaluate_predictions

console = Console()
app = typer.Typer(help="Replay attempt logs through the adaptive engine.")

METRICS = ("auc", "brier", "log_loss", "calibration_ece")


def _read_events(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


@app.command()
def replay(
    events_path: Path = typer.Option(..., "--events-path", help="CSV or Parquet attempt log."),
    config: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    output_path: Optional[Path] = typer.Option(None, "--output", help="Optional CSV for per-attempt predictions."),
    seed: int = typer.Option(42, "--seed", help="Random seed for sampling."),
) -> None:
    """
    Replay attempts and print calibration metrics.
    """
    console.rule("[bold blue]Replaying Attempt History[/bold blue]")

    if not events_path.exists():
        console.print(f"[red]Events file not found: {events_path}[/red]")
        raise typer.Exit(code=1)

    engine_config = EngineConfig()
    if config is not None:
        try:
            engine_config = load_engine_config(config)
        except FileNotFoundError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--config") from exc

    console.print(f"[dim]Loading events from {events_path}...[/dim]")
    events_df = _read_events(events_path)
    console.print(f"  Total attempts: {len(events_df):,}")

    try:
        predictions = replay_attempts(events_df, config=engine_config, seed=seed)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--events-path") from exc

    console.print(f"  Unique learners: {predictions['user_id'].nunique():,}")
    skipped = len(events_df) - len(predictions)
    if skipped:
        console.print(f"[yellow]  Skipped attempts: {skipped:,} (see log for reasons)[/yellow]")
    metrics = evaluate_predictions(predictions, METRICS)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric")
    table.add_column("Value")
    for name in METRICS:
        table.add_row(name, f"{metrics[name]:.4f}")
    console.print(table)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        predictions.to_csv(output_path, index=False)
        console.print(f"[green]✅ Predictions written to {output_path}[/green]")


if __name__ == "__main__":
    app()
