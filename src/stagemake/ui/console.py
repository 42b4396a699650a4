"""Console output formatting utilities for stagemake."""

from __future__ import annotations

import sys
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, terse: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show full reasoning, materialized commands and stack traces
            terse: If True, print only destination + reason after each successful job
        """
        self.debug = debug
        self.terse = terse and not debug

    def print_stage(self, stage: int, name: Optional[str], job_count: int) -> None:
        """Print a stage header."""
        if self.terse:
            return
        title = f"=== Stage {stage}: {name} ===" if name else f"=== Stage {stage} ==="
        print(title)
        self.print_debug(f"stage {stage}: {job_count} job(s) enumerated")

    def print_job_start(self, label: str, reason: str, command: str, body: str) -> None:
        """Print the job narration before execution."""
        if self.terse:
            return
        print(f"{label} ({reason})")
        if self.debug:
            print(f"  $ {command}")
        else:
            print(f"  $ {body}")

    def print_job_done(self, label: str, reason: str) -> None:
        """Print job completion (terse mode only)."""
        if self.terse:
            print(f"{label}: {reason}")

    def print_batch(self, size: int, directory: str) -> None:
        self.print_debug(f"running {size} job(s) in parallel in {directory}")

    def print_failure(
        self,
        label: str,
        command: str,
        exit_code: int,
    ) -> None:
        """
        Print failure message.

        Args:
            label: Job label (directory/destination)
            command: The failing command line
            exit_code: Exit status of the child
        """
        print(f"\nJOB FAILED: {label}", file=sys.stderr)
        print(f"Exit code: {exit_code}", file=sys.stderr)
        print(f"Command: {command}", file=sys.stderr)

    def print_results(self, results: dict[str, int]) -> None:
        """Print final results summary (jobs executed per stage)."""
        if self.terse:
            return
        total = sum(results.values())
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for stage, count in results.items():
            print(f"  {stage}: {count} job(s)")
        if total == 0:
            print("  everything up to date")

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

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        if not self.terse:
            print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)
