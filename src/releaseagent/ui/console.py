"""Console output formatting utilities for releaseagent."""

from __future__ import annotations

import sys
import traceback
from typing import TYPE_CHECKING, Optional, Sequence

from releaseagent.errors import StepPanicError

if TYPE_CHECKING:
    from releaseagent.model import Step, StepStatus
    from releaseagent.runner import StepState


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_release_started(self, versions: Sequence[str], step_count: int) -> None:
        print("\nRELEASE PLAN")
        print(f"Versions: {', '.join(versions)}")
        print(f"Steps: {step_count}")
        print()

    def print_plan(self, steps: Sequence[Step]) -> None:
        """Print steps in topological order with their dependencies."""
        self.print_header("Steps (dependencies first)")
        for i, step in enumerate(steps, 1):
            print(f"  {i:>3}. {step.name}")
            if self.debug:
                for dep in step.depends_on:
                    print(f"         <- {dep.name}")

    def print_stages(self, levels: Sequence[Sequence[Step]]) -> None:
        """Print groups of steps that may run in parallel."""
        self.print_header("Stages")
        for i, level in enumerate(levels, 1):
            print(f"=== Stage {i}: {len(level)} step(s) ===")
            for step in level:
                print(f"  {step.name}")

    def print_results(self, results: dict[str, StepStatus]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name, status in results.items():
            print(f"  {name}: {status.value.upper()}")

    def print_failures(self, states: Sequence[StepState]) -> None:
        """Print the error of every failed step; first line only unless debugging."""
        for state in states:
            if state.error is None:
                continue
            reason = str(state.error)
            original = state.error.original
            # Panics already carry their stack in the message.
            traced = original.__traceback__ is not None
            if self.debug and traced and not isinstance(state.error, StepPanicError):
                reason += "\n" + "".join(traceback.format_exception(original))
            self.print_failure(state.name, reason)

    def print_failure(self, name: str, reason: str) -> None:
        print(f"STEP FAILED: {name}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            print(f"Error: {error_line}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (set by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
