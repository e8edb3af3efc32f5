"""Console management with Rich integration.

This module provides a ConsoleManager that adapts output to:
- Rich-rendered color output and progress bars when in a TTY
- JSON-only output for machine-readable logs (CI/CD)
- Plain-text fallback for non-TTY environments
"""

from __future__ import annotations

import json
import logging
import re
import sys
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ..orchestration.pipeline import ProgressCallback

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


class ConsoleManager:
    """Manages console output with Rich integration."""

    def __init__(self, verbose: bool = False, json_output: bool = False, console: Optional[Console] = None):
        self.verbose = verbose
        self.json_output = json_output
        self.is_tty = sys.stderr.isatty()
        self.console = None if json_output else (console or Console(stderr=True))
        self._lock = threading.RLock()

    def setup_logging(self, logger: logging.Logger) -> None:
        """Attach a Rich or JSON-friendly handler and set the level from `verbose`."""

        def _has_handler_of_type(h_type):
            return any(isinstance(h, h_type) for h in logger.handlers)

        if self.json_output:
            if not _has_handler_of_type(logging.StreamHandler):
                handler = logging.StreamHandler(sys.stderr)
                handler.setFormatter(logging.Formatter("%(message)s"))
                logger.addHandler(handler)
        elif not _has_handler_of_type(RichHandler):
            logger.addHandler(
                RichHandler(console=self.console, show_time=True, show_path=self.verbose, rich_tracebacks=True)
            )
        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    @contextmanager
    def step_progress(self, description: str) -> Iterator[ProgressCallback]:
        """Yield a pipeline progress callback that renders each step.

        Usage:
            with console.step_progress("Creating ward") as on_progress:
                await workflow.create_ward(on_progress)
        """
        if self.json_output:
            def emit(step: int, total: int, message: str) -> None:
                self._emit_json({"type": "progress", "step": step, "total": total, "message": message})

            yield emit
            return

        if not self.is_tty:
            def emit(step: int, total: int, message: str) -> None:
                print(f"[{step}/{total}] {message}", file=sys.stderr)

            yield emit
            return

        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=self.console,
        )
        task_id = progress.add_task(description, total=None)

        def update(step: int, total: int, message: str) -> None:
            with self._lock:
                progress.update(task_id, completed=step - 1, total=total, description=message)

        progress.start()
        try:
            yield update
        finally:
            progress.stop()

    def print_record(self, title: str, record: Optional[Dict[str, Any]]) -> None:
        """Print a flat record as a two-column table, or JSON."""
        if self.json_output:
            print(json.dumps({"type": "record", "title": title, "record": record}, default=str))
            return
        if record is None:
            self.console.print(f"[yellow]{title}: none[/yellow]")
            return
        table = Table(title=title)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in record.items():
            table.add_row(str(key), "" if value is None else str(value))
        self.console.print(table)

    def print_error(self, message: str) -> None:
        if self.json_output:
            self._emit_json({"type": "error", "message": self._sanitize(message)})
        else:
            self.console.print(f"[red]ERROR: {message}[/red]")

    def print_message(self, message: str) -> None:
        if self.json_output:
            self._emit_json({"type": "message", "message": self._sanitize(message)})
        else:
            self.console.print(message)

    def _emit_json(self, payload: Dict[str, Any]) -> None:
        print(json.dumps({"timestamp": datetime.now().isoformat(), **payload}), file=sys.stderr)

    @staticmethod
    def _sanitize(value: str, max_length: int = 200) -> str:
        value = _CONTROL_CHARS_RE.sub("", str(value))
        value = re.sub(r"[\r\n]+", " ", value)
        return value if len(value) <= max_length else value[: max_length - 3] + "..."
