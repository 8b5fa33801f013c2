# ABOUTME: Provides a CLI for driving the adaptive engine against a local state directory.
# ABOUTME: Serves difficulty recommendations, applies outcomes, and simulates synthetic learners.

import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.adaptive.coordinator import AdaptiveCoordinator, InvalidOutcomeError
from src.adaptive.mastery import MasteryInsights
from src.adaptive.store import InMemoryAttemptHistory, InMemoryModelStore, JsonAttemptHistory, JsonModelStore
from src.common.config import EngineConfig, load_engine_config
from src.common.sampling import RandomVariateSampler
from src.common.schemas import AnswerOutcome, AttemptRecord

console = Console()
app = typer.Typer(help="Adaptive difficulty (Thompson Sampling) + mastery tracking engine.")


def _default_state_dir() -> Path:
    return Path("state")


def _load_config(config: Optional[Path]) -> EngineConfig:
    if config is None:
        return EngineConfig()
    try:
        return load_engine_config(config)
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _coordinator(state_dir: Path, config: EngineConfig, seed: Optional[int]):
    history = JsonAttemptHistory(state_dir / "history.json")
    coordinator = AdaptiveCoordinator(
        store=JsonModelStore(state_dir),
        context_provider=history,
        config=config,
        sampler=RandomVariateSampler(seed=seed if seed is not None else config.seed),
    )
    return coordinator, history


def _insights_table(topic: str, insights: MasteryInsights) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Topic")
    table.add_column("Level")
    table.add_column("Mastery")
    table.add_column("Confidence")
    table.add_column("Accuracy")
    table.add_column("P(success)")
    table.add_column("ZPD Difficulty")
    table.add_row(
        topic,
        insights.level,
        f"{insights.mastery_score:.4f}",
        f"{insights.confidence:.2f}",
        f"{insights.accuracy:.0%}",
        f"{insights.predicted_success_rate:.2f}",
        f"{insights.recommended_difficulty:.2f}",
    )
    return table


@app.command()
def recommend(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    topic: str = typer.Option(..., "--topic", help="Topic identifier."),
    state_dir: Path = typer.Option(_default_state_dir(), "--state-dir", help="Directory holding engine state."),
    streak_days: Optional[int] = typer.Option(None, "--streak-days", help="Current daily streak, if known."),
    config: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for sampling."),
) -> None:
    """
    Recommend the difficulty of the next question for a learner and topic.
    """
    coordinator, history = _coordinator(state_dir, _load_config(config), seed)
    if streak_days is not None:
        history.set_streak(user_id, streak_days)

    rec = coordinator.recommend(user_id, topic)

    console.rule("[bold blue]Adaptive Recommendation[/bold blue]")
    console.print(f"[bold]Learner:[/] {user_id}")
    console.print(f"[bold]Recommended difficulty:[/] {rec.recommended_difficulty:.3f}")
    console.print()
    console.print(_insights_table(topic, rec.mastery_insights))

    factors = Table(show_header=True, header_style="bold magenta")
    factors.add_column("Engagement")
    factors.add_column("Fatigue")
    factors.add_column("Session (min)")
    factors.add_row(
        f"{rec.context_factors.engagement_level:.2f}",
        "yes" if rec.context_factors.fatigue_detected else "no",
        str(rec.context_factors.optimal_session_length_minutes),
    )
    console.print(factors)


@app.command()
def observe(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    topic: str = typer.Option(..., "--topic", help="Topic identifier."),
    is_correct: bool = typer.Option(..., "--correct/--incorrect", help="Whether the answer was correct."),
    difficulty: float = typer.Option(..., "--difficulty", help="Difficulty the question was served at (0-1)."),
    time_taken: float = typer.Option(30.0, "--time-taken", help="Seconds spent answering."),
    frustration: int = typer.Option(0, "--frustration", help="Frustration signals reported by the client."),
    state_dir: Path = typer.Option(_default_state_dir(), "--state-dir", help="Directory holding engine state."),
    config: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
) -> None:
    """
    Apply an observed answer to the learner's bandit and mastery state.
    """
    coordinator, history = _coordinator(state_dir, _load_config(config), None)
    outcome = AnswerOutcome(
        is_correct=is_correct,
        difficulty=difficulty,
        time_taken_seconds=time_taken,
        frustration_indicators=frustration,
    )
    try:
        result = coordinator.observe(user_id, topic, outcome)
    except InvalidOutcomeError as exc:
        raise typer.BadParameter(str(exc)) from exc

    history.record_attempt(
        user_id,
        AttemptRecord(
            is_correct=is_correct,
            time_taken_seconds=time_taken,
            timestamp=result.mastery_update.last_attempt_at,
            topic_id=topic,
        ),
    )

    state = result.mastery_update
    console.rule("[bold blue]Outcome Applied[/bold blue]")
    console.print(f"[bold]Mastery:[/] {state.mastery_score:.4f}  [dim](CI {state.confidence_interval:.4f})[/dim]")
    if not result.bandit_updated:
        console.print("[yellow]No bandit model yet; run recommend first.[/yellow]")

    engagement = result.engagement_recommendation
    colour = "red" if engagement.intervention_needed else "green"
    console.print(f"[{colour}]{engagement.type}[/{colour}]: {engagement.recommendation}")

    nxt = result.next_session_recommendation
    console.print(f"[bold]Next session:[/] {', '.join(nxt.recommended_actions) or 'keep practising'}")
    console.print(f"  Target difficulty {nxt.next_difficulty_target:.2f}, ~{nxt.estimated_minutes_to_mastery} min to mastery")


@app.command()
def insights(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier."),
    topic: str = typer.Option(..., "--topic", help="Topic identifier."),
    state_dir: Path = typer.Option(_default_state_dir(), "--state-dir", help="Directory holding engine state."),
) -> None:
    """
    Show mastery insights for a learner and topic.
    """
    coordinator, _ = _coordinator(state_dir, EngineConfig(), None)
    result = coordinator.insights(user_id, topic)
    if result is None:
        console.print(f"[yellow]No mastery data for {user_id} on {topic}[/yellow]")
        raise typer.Exit(code=1)

    console.print(_insights_table(topic, result))

    bands = coordinator.mastery_bands(user_id, topic)
    band_table = Table(show_header=True, header_style="bold magenta")
    band_table.add_column("Band")
    band_table.add_column("Range")
    band_table.add_column("Confidence")
    for name, band in (
        ("Conceptual", bands.conceptual_understanding),
        ("Procedural", bands.procedural_fluency),
    ):
        band_table.add_row(name, f"{band.lower:.2f}-{band.upper:.2f}", f"{band.confidence_level:.2f}")
    console.print(band_table)

    if result.strengths:
        console.print("[green]Strengths:[/green] " + "; ".join(result.strengths))
    if result.improvement_areas:
        console.print("[yellow]Improve:[/yellow] " + "; ".join(result.improvement_areas))


@app.command()
def simulate(
    true_skill: float = typer.Option(0.6, "--true-skill", help="Latent ability of the synthetic learner (0-1)."),
    turns: int = typer.Option(30, "--turns", help="Number of questions to simulate."),
    seed: int = typer.Option(42, "--seed", help="Random seed."),
    config: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
) -> None:
    """
    Run a synthetic learner through recommend/observe turns in memory.

    P(correct) follows a logistic curve in (true_skill - difficulty).
    """
    engine_config = _load_config(config)
    sampler = RandomVariateSampler(seed=seed)
    history = InMemoryAttemptHistory()
    coordinator = AdaptiveCoordinator(
        store=InMemoryModelStore(),
        context_provider=history,
        config=engine_config,
        sampler=sampler,
    )

    user_id, topic = "sim-learner", "sim-topic"
    clock = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Turn")
    table.add_column("Difficulty")
    table.add_column("Correct")
    table.add_column("Mastery")
    table.add_column("Level")

    for turn in range(1, turns + 1):
        rec = coordinator.recommend(user_id, topic, now=clock)
        difficulty = rec.recommended_difficulty
        p_correct = 1.0 / (1.0 + math.exp(-8.0 * (true_skill - difficulty)))
        is_correct = sampler.uniform() < p_correct
        time_taken = 15.0 + 30.0 * sampler.uniform()

        result = coordinator.observe(
            user_id,
            topic,
            AnswerOutcome(is_correct=is_correct, difficulty=difficulty, time_taken_seconds=time_taken),
            now=clock,
        )
        history.record_attempt(user_id, AttemptRecord(is_correct, time_taken, clock, topic))
        table.add_row(
            str(turn),
            f"{difficulty:.2f}",
            "✅" if is_correct else "❌",
            f"{result.mastery_update.mastery_score:.4f}",
            coordinator.tracker.insights(result.mastery_update).level,
        )
        clock += timedelta(seconds=time_taken)

    console.rule(f"[bold blue]Simulated learner (skill={true_skill:.2f})[/bold blue]")
    console.print(table)

    model = coordinator.store.load_bandit(user_id)
    console.print()
    console.print("[dim]Posterior means per arm:[/dim]")
    for arm, params in model.arm_parameters.items():
        bar = "█" * int(params.mean * 20)
        console.print(f"   {arm:8} {params.mean:.3f} {bar}")


if __name__ == "__main__":
    app()
