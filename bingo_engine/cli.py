"""Flask CLI commands for the scheduler.

Usage:
  flask --app wsgi scheduler
  flask --app wsgi tick auto_draw
"""

from __future__ import annotations

import json
import signal

import click
from flask import Flask, current_app

from bingo_engine.scheduler import Jobs, Scheduler, run_job


def _jobs() -> Jobs:
    services = current_app.extensions["bingo"]
    return Jobs(
        session_factory=current_app.extensions["session_factory"],
        rounds=services.rounds,
        purchases=services.purchases,
        settlement=services.settlement,
    )


@click.command("scheduler")
@click.option("--poll", default=1.0, show_default=True, help="Seconds between due-job checks.")
def scheduler_command(poll: float) -> None:
    """Run all periodic jobs until interrupted."""

    scheduler = Scheduler.from_config(_jobs(), current_app.config)

    def _stop(signum, frame):  # noqa: ARG001
        scheduler.stop()

    signal.signal(signal.SIGTERM, _stop)
    try:
        scheduler.run_forever(poll_seconds=poll)
    except KeyboardInterrupt:
        scheduler.stop()
    finally:
        current_app.extensions["bingo"].dispatcher.shutdown(wait=True)


@click.command("tick")
@click.argument("job")
def tick_command(job: str) -> None:
    """Run one job once and print its result."""

    bodies = _jobs().by_name()
    if job not in bodies:
        raise click.BadParameter(f"choose from {', '.join(bodies)}", param_hint="JOB")

    result = run_job(job, bodies[job])
    click.echo(json.dumps(result, default=str))


def register_cli(app: Flask) -> None:
    app.cli.add_command(scheduler_command)
    app.cli.add_command(tick_command)
