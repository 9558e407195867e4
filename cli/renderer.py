"""
DocStore Record Renderer
========================
Formats records as aligned ASCII tables for the command-line inspector.

Features:
  - Auto-column-width with configurable max
  - NULL displayed distinctly
  - Row count footer
  - Modes: table, vertical, raw
"""

import math
import sys
from typing import Any, Dict, Iterable, List, Optional, TextIO

from storage.errors import CorruptDatabaseFileError, TableNotFoundError, ValidationError

MODES = ("table", "vertical", "raw")


class Renderer:
    """Record renderer with configurable display modes."""

    def __init__(self, output: TextIO = None, mode: str = "table"):
        if mode not in MODES:
            raise ValueError(f"Unknown display mode: {mode!r}. Valid modes: {list(MODES)}")
        self.output = output or sys.stdout
        self.mode: str = mode
        self.show_headers: bool = True
        self.max_col_width: int = 50

    # ─── Public API ─────────────────────────────────────────────────

    def render_rows(self, rows: Iterable[Dict[str, Any]],
                    column_names: Optional[List[str]] = None) -> int:
        """Render records. Returns number of rows rendered."""
        rows = list(rows)
        headers = column_names or (list(rows[0].keys()) if rows else [])

        if self.mode == "raw":
            self._render_raw(rows, headers)
        elif self.mode == "vertical":
            self._render_vertical(rows, headers)
        else:
            self._render_table(rows, headers)

        self._print(f"\n{len(rows)} row(s)")
        return len(rows)

    def render_message(self, message: str):
        if message:
            self._print(message)

    def render_error(self, error: Exception):
        """Render an error with classification prefix."""
        prefix = self._classify_error(error)
        self._print(f"{prefix}: {error}")

    # ─── Table Mode ─────────────────────────────────────────────────

    def _render_table(self, rows: List[Dict], headers: List[str]):
        if not headers:
            return
        widths = self._calculate_widths(headers, rows)

        if self.show_headers:
            self._print_table_separator(widths, headers)
            self._print_table_row(widths, headers, {h: h for h in headers})
            self._print_table_separator(widths, headers)

        for vals in rows:
            self._print_table_row(widths, headers, vals)

        if self.show_headers and rows:
            self._print_table_separator(widths, headers)

    def _calculate_widths(self, headers: List[str], rows: List[Dict]) -> Dict[str, int]:
        widths = {h: min(len(h), self.max_col_width) for h in headers}
        for row in rows:
            for h in headers:
                val = self._format_value(row.get(h))
                widths[h] = max(widths[h], min(len(val), self.max_col_width))
        return widths

    def _print_table_separator(self, widths: Dict[str, int], headers: List[str]):
        """Print +----+------+ separator line."""
        parts = ["+"]
        for h in headers:
            parts.append("-" * (widths[h] + 2) + "+")
        self._print("".join(parts))

    def _print_table_row(self, widths: Dict[str, int], headers: List[str], vals: Dict):
        """Print | col1 | col2 | row."""
        parts = ["|"]
        for h in headers:
            raw_val = vals.get(h)
            val_str = self._format_value(raw_val)
            if len(val_str) > self.max_col_width:
                val_str = val_str[:self.max_col_width - 3] + "..."
            w = widths[h]
            # Right-align numbers, left-align everything else
            if isinstance(raw_val, (int, float)) and not isinstance(raw_val, bool):
                parts.append(f" {val_str:>{w}} |")
            else:
                parts.append(f" {val_str:<{w}} |")
        self._print("".join(parts))

    # ─── Vertical Mode ──────────────────────────────────────────────

    def _render_vertical(self, rows: List[Dict], headers: List[str]):
        max_key_len = max((len(h) for h in headers), default=0)
        for count, vals in enumerate(rows, start=1):
            self._print(f"*** Row {count} ***")
            for h in headers:
                self._print(f"  {h:>{max_key_len}}: {self._format_value(vals.get(h))}")

    # ─── Raw Mode ───────────────────────────────────────────────────

    def _render_raw(self, rows: List[Dict], headers: List[str]):
        if self.show_headers and headers:
            self._print("|".join(headers))
        for vals in rows:
            self._print("|".join(self._format_value(vals.get(h)) for h in headers))

    # ─── Helpers ────────────────────────────────────────────────────

    def _format_value(self, value) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            if not math.isfinite(value):
                return str(value)
            if value == int(value):
                return str(int(value))
            return f"{value:.6g}"
        return str(value)

    def _classify_error(self, error: Exception) -> str:
        """Map error class to user-friendly prefix."""
        if isinstance(error, TableNotFoundError):
            return "NotFound"
        if isinstance(error, CorruptDatabaseFileError):
            return "CorruptFile"
        if isinstance(error, ValidationError):
            return "ValidationError"
        if isinstance(error, OSError):
            return "IOError"
        return f"Error[{type(error).__name__}]"

    def _print(self, text: str):
        print(text, file=self.output)
