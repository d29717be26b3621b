"""CLI interface for livemix.

All commands print JSON; errors go to stderr as JSON and exit with status 1.
"""

import json
import logging
import sys
from pathlib import Path

import click

from .config import load_config
from .errors import LiveMixError
from .graph.collaborator import RecordingCollaborator
from .logs_config import configure_logging
from .realtime.simulation import SimulatedPlayback
from .runtime import LiveMixRuntime
from .script.compiler import compile_script
from .script.validate import validate_program


def output(data: dict, ctx):
    if ctx.obj.get("pretty"):
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(json.dumps(data))


def fail(error: Exception):
    click.echo(json.dumps({"error": type(error).__name__, "message": str(error)}), err=True)
    sys.exit(1)


@click.group()
@click.option("--pretty/--no-pretty", default=True, help="Pretty print JSON output")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
@click.option("--log-file/--no-log-file", default=False, help="Also write a rotating log file")
@click.pass_context
def cli(ctx, pretty, verbose, log_file):
    """livemix - run timeline scripts against a media graph."""
    ctx.ensure_object(dict)
    ctx.obj["pretty"] = pretty
    configure_logging(level=logging.DEBUG if verbose else logging.INFO, log_to_file=log_file)


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def check(ctx, script, config_path):
    """Compile and validate SCRIPT without running it."""
    try:
        config = load_config(config_path)
        program = compile_script(script.read_text())
        report = validate_program(program, config)
    except LiveMixError as e:
        fail(e)
    output({"script": str(script), "ok": True, **report.to_dict()}, ctx)


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--simulate/--no-simulate", default=True, help="Drive playing instances with simulated clocks")
@click.option("--timeout", type=float, default=None, help="Stop the run after this many seconds")
@click.pass_context
def run(ctx, script, config_path, simulate, timeout):
    """Run SCRIPT against the recording backend."""
    collaborator = RecordingCollaborator(log_level=logging.INFO)
    playback = None
    try:
        config = load_config(config_path)
        runtime = LiveMixRuntime.from_file(script, collaborator, config)
        runtime.build()
        if simulate:
            playback = SimulatedPlayback(
                runtime.graph, runtime.signals, duration_s=config.simulate_duration_s
            )
            playback.start()
        finished = runtime.run(timeout=timeout)
    except LiveMixError as e:
        fail(e)
    finally:
        if playback is not None:
            playback.stop()

    scheduler = runtime.scheduler
    output(
        {
            "script": str(script),
            "finished": finished,
            "reason": scheduler.termination_reason,
            "triggers_fired": [b.describe() for b in scheduler.dispatched],
            "backend_calls": len(collaborator.calls),
        },
        ctx,
    )


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
