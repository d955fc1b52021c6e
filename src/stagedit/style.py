"""Cross-platform terminal styling and debug output.

Provides simple text styling that works on all platforms.
Falls back to plain text markers when ANSI colors aren't supported.
"""

import json
import os
import sys
from typing import Any


def _supports_color(stream=None) -> bool:
    """Check if the terminal supports ANSI colors."""
    stream = stream or sys.stdout

    # Force colors with FORCE_COLOR env var
    if os.environ.get("FORCE_COLOR"):
        return True

    # Disable colors if NO_COLOR env var is set
    if os.environ.get("NO_COLOR"):
        return False

    if not hasattr(stream, "isatty") or not stream.isatty():
        return False

    if os.name == "nt":
        # Windows Terminal, VS Code and Git Bash handle ANSI; plain CMD may not
        return bool(
            os.environ.get("WT_SESSION")
            or os.environ.get("TERM_PROGRAM") == "vscode"
            or os.environ.get("TERM")
        )

    return True


# Check once at import time
USE_COLOR = _supports_color()


def dim(text: str) -> str:
    """Dim/gray text."""
    if USE_COLOR:
        return f"\033[90m{text}\033[0m"
    return text


def bold(text: str) -> str:
    """Bold text."""
    if USE_COLOR:
        return f"\033[1m{text}\033[0m"
    return text


def green(text: str) -> str:
    """Green text (success)."""
    if USE_COLOR:
        return f"\033[32m{text}\033[0m"
    return f"+ {text}"


def red(text: str) -> str:
    """Red text (error)."""
    if USE_COLOR:
        return f"\033[31m{text}\033[0m"
    return f"! {text}"


def yellow(text: str) -> str:
    """Yellow text (warning)."""
    if USE_COLOR:
        return f"\033[33m{text}\033[0m"
    return f"* {text}"


def cyan(text: str) -> str:
    """Cyan text (model names, commands)."""
    if USE_COLOR:
        return f"\033[36m{text}\033[0m"
    return text


def section_header(title: str, style: str = "info") -> str:
    """Create a styled section header.

    Args:
        title: The section title
        style: One of "info", "success", "warning", "error"
    """
    colors = {
        "info": ("36", "1;36"),      # cyan
        "success": ("32", "1;32"),   # green
        "warning": ("33", "1;33"),   # yellow
        "error": ("31", "1;31"),     # red
    }

    line_color, title_color = colors.get(style, colors["info"])
    title_display = f" {title} "
    total_width = 60
    title_len = len(title_display)
    left_len = max(0, (total_width - title_len) // 2)
    right_len = max(0, total_width - title_len - left_len)

    if USE_COLOR:
        return (
            f"\033[{line_color}m{'─' * left_len}\033[0m"
            f"\033[{title_color}m{title_display}\033[0m"
            f"\033[{line_color}m{'─' * right_len}\033[0m"
        )
    return f"{'-' * left_len}{title_display}{'-' * right_len}"


def colorize_diff(diff_text: str) -> str:
    """Color a unified diff line by line."""
    lines = []
    for line in diff_text.splitlines():
        if line.startswith(("+++", "---")):
            lines.append(bold(line))
        elif line.startswith("+"):
            lines.append(f"\033[32m{line}\033[0m" if USE_COLOR else line)
        elif line.startswith("-"):
            lines.append(f"\033[31m{line}\033[0m" if USE_COLOR else line)
        elif line.startswith("@@"):
            lines.append(cyan(line))
        else:
            lines.append(line)
    return "\n".join(lines)


def debug_log(label: str, data: Any = None) -> None:
    """Print a dim debug line to stderr."""
    if data is None:
        text = f"[DEBUG] {label}"
    else:
        if not isinstance(data, str):
            data = json.dumps(data, default=str)[:500]
        text = f"[DEBUG] {label}: {data}"
    print(dim(text), file=sys.stderr)
