# trimmer/printer.py
# Centralized CLI output: results to stdout, failures to stderr.

import os
import sys
from typing import Optional

from application.domain.errors import TrimError

# Recovery hint shown for each failure kind
ERROR_HINTS: dict[str, str] = {
    "network_error":  "Check the URL and your connection, then run the trim again.",
    "transfer_error": "The download was cut off. Run the trim again.",
    "decode_error":   "The source does not look like a supported audio file.",
    "range_error":    "Choose a start before the end, inside the audio's duration.",
    "encode_timeout": "Re-run with --fallback to save the original, untrimmed audio.",
    "internal_error": "This is a bug. Please report it with the command you ran.",
}


class OutputPrinter:
    """
    Formatter for the audio trimmer CLI.

    Success, warning and info lines respect --quiet; errors are always shown.
    Color is optional and disabled by --no-color or the NO_COLOR env var.
    """

    SYMBOLS : dict[str, str] = {
        "success" : "✅",
        "error"   : "❌",
        "warning" : "⚠️ ",
        "info"    : "ℹ️ ",
        "hint"    : "→",
    }

    COLORS : dict[str, str] = {
        "green"  : "32",
        "red"    : "31",
        "yellow" : "33",
        "cyan"   : "36",
        "dim"    : "90",
    }

    COL_WIDTH : int = 10  # Column alignment for detail blocks

    def __init__(self, quiet : bool = False, no_color : bool = False) -> None:
        self.quiet    : bool = quiet
        self.no_color : bool = no_color or bool(os.environ.get("NO_COLOR", ""))

    def _colorize(self, text : str, code : str) -> str:
        if self.no_color:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _hint(self, hint : str, stream) -> None:
        h : str = self._colorize(f"{self.SYMBOLS['hint']} {hint}", self.COLORS["cyan"])
        print(f"    {h}", file=stream)

    def success(self, title : str, details : Optional[dict[str, str]] = None) -> None:
        """Print the saved file with an optional aligned detail block."""
        if self.quiet:
            return
        symbol : str = self._colorize(self.SYMBOLS["success"], self.COLORS["green"])
        label  : str = self._colorize(title, self.COLORS["green"])
        print(f"\n{symbol}  {label}")
        if details:
            for key, value in details.items():
                dim_key : str = self._colorize(f"{key:<{self.COL_WIDTH}}", self.COLORS["dim"])
                print(f"    {dim_key}: {value}")

    def error(self, message : str, hint : Optional[str] = None) -> None:
        symbol : str = self._colorize(self.SYMBOLS["error"], self.COLORS["red"])
        msg    : str = self._colorize(message, self.COLORS["red"])
        print(f"\n{symbol}  {msg}", file=sys.stderr)
        if hint:
            self._hint(hint, sys.stderr)

    def trim_error(self, exc : TrimError) -> None:
        """Print a pipeline failure with the recovery hint for its kind."""
        self.error(f"[{exc.kind}] {exc.message}", hint=ERROR_HINTS.get(exc.kind))

    def warning(self, message : str, hint : Optional[str] = None) -> None:
        if self.quiet:
            return
        symbol : str = self._colorize(self.SYMBOLS["warning"], self.COLORS["yellow"])
        msg    : str = self._colorize(message, self.COLORS["yellow"])
        print(f"\n{symbol} {msg}")
        if hint:
            self._hint(hint, sys.stdout)

    def info(self, message : str) -> None:
        if self.quiet:
            return
        symbol : str = self._colorize(self.SYMBOLS["info"], self.COLORS["cyan"])
        print(f"{symbol} {message}")
