"""Demo commands: run race scenarios unprotected and with their remedy."""

import typer

from ..config import RacelabConfig
from ..constants import EXIT_DEMO_FAILED
from ..demos import SCENARIO_KINDS, build_scenario, run_scenario, run_transfer_demo, run_trials
from ..models import DemoResult
from ..output import get_output_context, trial_table
from .common import get_config

demo_app = typer.Typer(help="Run race condition demonstrations")

_LOCK = typer.Option(
    False, "--lock/--no-lock", help="Protect the critical section with the shared FileLock"
)
_BOTH = typer.Option(False, "--both", help="Run unprotected, then with the lock")
_WORKERS = typer.Option(None, "--workers", "-w", min=1, help="Override the worker count")
_TRIALS = typer.Option(
    1, "--trials", "-t", min=1, help="Repeat and report how often a race was detected"
)


def _modes(lock: bool, both: bool) -> list[bool]:
    return [False, True] if both else [lock]


def _report(results: list[DemoResult]) -> None:
    if any(not r.success for r in results):
        raise typer.Exit(EXIT_DEMO_FAILED)


def _run_kind(
    kind: str, config: RacelabConfig, lock: bool, both: bool, workers: int | None, trials: int
) -> list[DemoResult]:
    ctx = get_output_context()
    scenario = build_scenario(kind, config, workers)
    results: list[DemoResult] = []
    for synchronized in _modes(lock, both):
        if trials > 1:
            summary = run_trials(scenario, config, synchronized, trials)
            if ctx.json_mode:
                ctx.print_json({**summary.model_dump(), "race_rate": summary.race_rate})
            else:
                ctx.console.print(trial_table(summary))
            results.append(
                DemoResult(
                    success=summary.failures == 0,
                    message=f"{summary.races}/{summary.trials} trials detected a race",
                    error=f"{summary.failures} trial(s) failed" if summary.failures else None,
                )
            )
            continue

        result, verification = run_scenario(scenario, config, synchronized, ctx)
        ctx.demo_result(result, verification)
        results.append(result)
    return results


@demo_app.command("counter")
def counter(
    lock: bool = _LOCK,
    both: bool = _BOTH,
    workers: int | None = _WORKERS,
    trials: int = _TRIALS,
) -> None:
    """Lost updates: workers increment a shared counter (read-modify-write)."""
    _report(_run_kind("counter", get_config(), lock, both, workers, trials))


@demo_app.command("bank")
def bank(
    lock: bool = _LOCK,
    both: bool = _BOTH,
    workers: int | None = _WORKERS,
    trials: int = _TRIALS,
) -> None:
    """Overdraft: concurrent withdrawals from one balance (check-then-act)."""
    _report(_run_kind("bank", get_config(), lock, both, workers, trials))


@demo_app.command("inventory")
def inventory(
    lock: bool = _LOCK,
    both: bool = _BOTH,
    workers: int | None = _WORKERS,
    trials: int = _TRIALS,
) -> None:
    """Overselling: concurrent purchases against one stock level (check-then-act)."""
    _report(_run_kind("inventory", get_config(), lock, both, workers, trials))


@demo_app.command("buffer")
def buffer(
    lock: bool = _LOCK,
    both: bool = _BOTH,
    workers: int | None = typer.Option(
        None, "--workers", "-w", min=1, help="Override the producer and consumer counts"
    ),
    trials: int = _TRIALS,
) -> None:
    """Producer-consumer: lost and doubly consumed items in a bounded buffer."""
    _report(_run_kind("buffer", get_config(), lock, both, workers, trials))


@demo_app.command("transfer")
def transfer(
    transactional: bool = typer.Option(
        False, "--transactional/--no-transaction", help="Wrap each transfer in a transaction"
    ),
    both: bool = typer.Option(False, "--both", help="Run without, then with transactions"),
    workers: int | None = _WORKERS,
) -> None:
    """Database transfers: money moved between two SQLite rows."""
    ctx = get_output_context()
    config = get_config()
    results = []
    for tx in _modes(transactional, both):
        result, verification = run_transfer_demo(config, tx, ctx, workers)
        ctx.demo_result(result, verification)
        results.append(result)
    _report(results)


@demo_app.command("all")
def run_all() -> None:
    """Run every demo, unprotected and then with its remedy."""
    ctx = get_output_context()
    config = get_config()
    results: list[DemoResult] = []
    for kind in SCENARIO_KINDS:
        results += _run_kind(kind, config, lock=False, both=True, workers=None, trials=1)
    for tx in (False, True):
        result, verification = run_transfer_demo(config, tx, ctx)
        ctx.demo_result(result, verification)
        results.append(result)

    ctx.section("Summary")
    for result in results:
        ctx.print(f"  {'✓' if result.success else '✗'} {result.message}")
    _report(results)
