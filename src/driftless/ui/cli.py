# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from driftless.app import (
    RunSettings,
    apply_changes,
    build_reconciler,
    build_state_store,
    evaluate_outputs,
    list_state,
    load,
    parse_assignments,
    plan_changes,
    refresh_state,
)
from driftless.config import configure_logging
from driftless.domain.errors import (
    ConfigurationError,
    CycleError,
    UnresolvedReferenceError,
)
from driftless.domain.reconciliation import CancellationToken
from driftless.ui.render import (
    render_outputs,
    render_plan,
    render_records,
    render_refresh,
    render_report,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from types import FrameType

    from driftless.domain.document import Configuration
    from driftless.domain.reconciliation import Plan

log = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("driftless.toml")
CONFIRMATION = "yes"

_USAGE_ERRORS = (ConfigurationError, CycleError, UnresolvedReferenceError)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _common_arguments() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Configuration document (.toml or .json, default: %(default)s)",
    )
    common.add_argument(
        "--state",
        type=Path,
        help="JSON state file (overrides DRIFTLESS_STATE_BACKEND/DRIFTLESS_STATE_PATH)",
    )
    common.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Set a variable; may be repeated",
    )
    common.add_argument(
        "--var-file",
        action="append",
        default=[],
        type=Path,
        help="Load variable values from a .toml or .json document; may be repeated",
    )
    common.add_argument(
        "--parallelism",
        type=_positive_int,
        help="Maximum number of concurrent provider operations",
    )
    common.add_argument(
        "--no-refresh",
        dest="refresh",
        action="store_false",
        default=None,
        help="Do not re-read remote objects before planning",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return common


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    common = _common_arguments()
    parser = argparse.ArgumentParser(
        prog="driftless",
        description="Reconcile declared resources with a provider",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan = subparsers.add_parser("plan", parents=[common], help="Show what apply would change")
    plan.add_argument("--out", type=Path, help="Write the plan as JSON for review")
    plan.add_argument("--destroy", action="store_true", help="Plan deleting every resource")

    apply = subparsers.add_parser("apply", parents=[common], help="Plan and apply changes")
    apply.add_argument(
        "--auto-approve",
        action="store_true",
        help="Skip the interactive confirmation",
    )

    destroy = subparsers.add_parser(
        "destroy",
        parents=[common],
        help="Delete every resource recorded in state",
    )
    destroy.add_argument(
        "--auto-approve",
        action="store_true",
        help="Skip the interactive confirmation",
    )

    subparsers.add_parser(
        "refresh",
        parents=[common],
        help="Re-read remote objects and update state",
    )
    subparsers.add_parser("output", parents=[common], help="Print output values from state")

    state = subparsers.add_parser("state", help="Inspect recorded state")
    state_sub = state.add_subparsers(dest="state_command", required=True)
    state_sub.add_parser("list", parents=[common], help="List recorded resources")

    return parser.parse_args(list(argv))


def _settings(args: argparse.Namespace) -> RunSettings:
    return RunSettings(
        config_path=args.config,
        state_path=args.state,
        var_files=tuple(args.var_file),
        assignments=parse_assignments(args.var),
        parallelism=args.parallelism,
        refresh=args.refresh,
    )


def _emit(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


def _sensitive_values(configuration: Configuration) -> set[object]:
    return {
        value
        for name, value in configuration.variables.items()
        if name in configuration.sensitive_variables and isinstance(value, str | int | float)
    }


def _confirm(sensitive: set[object]) -> Callable[[Plan], bool]:
    def approve(plan: Plan) -> bool:
        _emit(render_plan(plan, sensitive=sensitive))
        answer = input(f"Enter '{CONFIRMATION}' to perform these actions: ")
        return answer.strip() == CONFIRMATION

    return approve


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Iterator[None]:
    def handler(_signal_received: int, _frame: FrameType | None) -> None:
        if token.cancelled:
            log.info("Interrupted again, exiting without waiting for in-flight steps")
            sys.exit(1)
        log.warning("Interrupt received; finishing in-flight steps, starting no new ones")
        token.cancel()

    previous = signal(SIGINT, handler)
    try:
        yield
    finally:
        signal(SIGINT, previous)


def _run(args: argparse.Namespace) -> int:
    settings = _settings(args)

    if args.command == "state":
        _emit(render_records(list_state(build_state_store(state_path=settings.state_path))))
        return 0

    if args.command == "refresh":
        _emit(render_refresh(refresh_state(reconciler=build_reconciler(settings))))
        return 0

    configuration = load(settings)
    reconciler = build_reconciler(settings)
    sensitive = _sensitive_values(configuration)

    if args.command == "plan":
        plan = plan_changes(
            configuration, reconciler=reconciler, destroy=args.destroy, out=args.out
        )
        _emit(render_plan(plan, sensitive=sensitive))
        return 0

    if args.command in {"apply", "destroy"}:
        token = CancellationToken()
        with _cancel_on_interrupt(token):
            result = apply_changes(
                configuration,
                reconciler=reconciler,
                destroy=args.command == "destroy",
                approve=None if args.auto_approve else _confirm(sensitive),
                cancellation=token,
            )
        if args.auto_approve or not result.plan.has_changes:
            _emit(render_plan(result.plan, sensitive=sensitive))
        if result.report is not None:
            _emit(render_report(result.report))
        return 0 if result.succeeded else 1

    if args.command == "output":
        outputs = evaluate_outputs(configuration, reconciler=reconciler)
        _emit(render_outputs(outputs, sensitive=sensitive))
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        exit_code = _run(parsed_args)
    except _USAGE_ERRORS as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
