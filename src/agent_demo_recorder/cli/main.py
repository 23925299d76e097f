"""CLI entry point for agent-demo-recorder.

Invoked as::

    agent-demo-recorder [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m agent_demo_recorder.cli.main

Available commands
------------------
* ``version``        — show detailed version information
* ``inspect``        — print the header, parameters, and steps of a demonstration
* ``record-sample``  — record a synthetic demonstration to check a setup end to end
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from agent_demo_recorder.config import DEFAULT_METADATA_CAPACITY, RecorderConfig

console = Console()
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="agent-demo-recorder")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the log level.",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Record agent demonstrations into binary trace files and inspect them."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s — %(message)s",
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from agent_demo_recorder import __version__
    from agent_demo_recorder.demonstrations.models import API_VERSION

    console.print(f"[bold]agent-demo-recorder[/bold] v{__version__}")
    console.print(f"File format api_version {API_VERSION}")
    console.print(f"Python {sys.version}")


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


@cli.command(name="inspect")
@click.argument("demo_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--steps", default=5, show_default=True, help="Number of steps to list.")
@click.option(
    "--metadata-capacity",
    default=DEFAULT_METADATA_CAPACITY,
    show_default=True,
    type=click.IntRange(min=1),
    help="Reserved metadata bytes the file was written with.",
)
@click.option("--json", "as_json", is_flag=True, help="Emit a JSON summary instead of tables.")
def inspect_command(
    demo_path: str,
    steps: int,
    metadata_capacity: int,
    as_json: bool,
) -> None:
    """Print the metadata, session parameters, and first steps of DEMO_PATH."""
    from agent_demo_recorder.demonstrations.reader import load_demonstration
    from agent_demo_recorder.errors import DemonstrationFormatError

    try:
        demonstration = load_demonstration(demo_path, metadata_capacity=metadata_capacity)
    except DemonstrationFormatError as exc:
        console.print(f"[red]Error reading demonstration:[/red] {exc}")
        raise SystemExit(1) from exc

    if as_json:
        summary = demonstration.summary()
        summary["observation_specs"] = [
            spec.model_dump(mode="json")
            for spec in demonstration.parameters.observation_specs
        ]
        click.echo(json.dumps(summary, indent=2))
        return

    metadata = demonstration.metadata
    header = Table(title="Metadata", show_header=True)
    header.add_column("Field", style="bold")
    header.add_column("Value")
    header.add_row("Name", metadata.name)
    header.add_row("API version", str(metadata.api_version))
    header.add_row("Experiences", str(metadata.experience_count))
    header.add_row("Episodes", str(metadata.episode_count))
    header.add_row("Mean reward", f"{metadata.mean_reward:.4f}")
    console.print(header)

    parameters = demonstration.parameters
    params_table = Table(title="Session parameters", show_header=True)
    params_table.add_column("Field", style="bold")
    params_table.add_column("Value")
    params_table.add_row("Brain", parameters.brain_name)
    params_table.add_row("Action space", parameters.action_space_type.value)
    params_table.add_row("Action shape", str(parameters.action_shape))
    for index, spec in enumerate(parameters.observation_specs):
        params_table.add_row(
            f"Observation {index}",
            f"{spec.name or '(unnamed)'} {spec.shape} {spec.compression.name}",
        )
    console.print(params_table)

    if steps > 0 and demonstration.steps:
        steps_table = Table(title=f"First {steps} steps", show_header=True)
        steps_table.add_column("#", justify="right")
        steps_table.add_column("Reward", justify="right")
        steps_table.add_column("Done")
        steps_table.add_column("Action")
        for index, step in enumerate(demonstration.steps[:steps]):
            steps_table.add_row(
                str(index),
                f"{step.reward:.4f}",
                str(step.done),
                str(step.action.tolist()),
            )
        console.print(steps_table)


# ---------------------------------------------------------------------------
# record-sample
# ---------------------------------------------------------------------------


@cli.command(name="record-sample")
@click.argument("name")
@click.option("--steps", default=100, show_default=True, type=click.IntRange(min=0))
@click.option(
    "--episode-length",
    default=25,
    show_default=True,
    type=click.IntRange(min=1),
    help="Mark every N-th step as terminal.",
)
@click.option("--seed", default=None, type=int, help="RNG seed.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML recorder config.",
)
@click.option(
    "--directory",
    default=None,
    type=click.Path(file_okay=False),
    help="Output directory (overrides the config).",
)
def record_sample(
    name: str,
    steps: int,
    episode_length: int,
    seed: int | None,
    config_path: str | None,
    directory: str | None,
) -> None:
    """Record a synthetic random-walk demonstration called NAME."""
    import numpy as np
    import yaml

    from agent_demo_recorder.demonstrations.models import SessionParameters, StepRecord
    from agent_demo_recorder.demonstrations.recorder import DemonstrationRecorder
    from agent_demo_recorder.errors import RecordingError
    from agent_demo_recorder.sensors.base import VectorSensor

    try:
        config = RecorderConfig.from_yaml(config_path) if config_path else RecorderConfig()
    except (OSError, ValueError, yaml.YAMLError) as exc:
        console.print(f"[red]Invalid recorder config:[/red] {exc}")
        raise SystemExit(1) from exc
    if directory is not None:
        config = config.model_copy(update={"directory": Path(directory)})

    rng = np.random.default_rng(seed)
    sensor = VectorSensor("position", size=2)
    parameters = SessionParameters.from_sensors(
        "RandomWalk", [sensor], action_shape=(2,)
    )
    recorder = DemonstrationRecorder(config=config)
    try:
        path = recorder.initialize(name, parameters)
        position = np.zeros(2, dtype=np.float32)
        for index in range(steps):
            action = rng.uniform(-1.0, 1.0, size=2).astype(np.float32)
            sensor.observe(position)
            done = (index + 1) % episode_length == 0
            recorder.record(
                StepRecord(action=action, reward=float(-np.linalg.norm(position)), done=done),
                sensors=[sensor],
            )
            position = np.zeros(2, dtype=np.float32) if done else position + action
        metadata = recorder.close()
    except RecordingError as exc:
        console.print(f"[red]Recording failed:[/red] {exc}")
        raise SystemExit(1) from exc

    console.print(f"[bold green]Demonstration saved to:[/bold green] {path}")
    console.print(
        f"{metadata.experience_count} steps, {metadata.episode_count} episodes, "
        f"mean reward {metadata.mean_reward:.4f}"
    )


if __name__ == "__main__":
    cli()
