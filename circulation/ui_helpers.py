import json
import os
from typing import Any, Dict, List, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_records(records: Sequence[Any], columns: List[str], title: str, empty_message: str) -> None:
    """Print records (anything with ``to_dict``, or plain dicts) in the current output mode.

    - plain: one ``key=value`` line per record
    - json: JSON array restricted to ``columns``
    - rich: Rich table
    """
    mode = get_output_mode()

    if not records:
        print(empty_message)
        return

    rows: List[Dict[str, Any]] = [r.to_dict() if hasattr(r, "to_dict") else dict(r) for r in records]

    if mode == "json":
        payload = [{c: row.get(c) for c in columns} for row in rows]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for c in columns:
            table.add_column(c, style="magenta" if c.endswith("id") else "white")
        for row in rows:
            table.add_row(*["" if row.get(c) is None else str(row.get(c)) for c in columns])
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(f"{c}={'' if row.get(c) is None else row.get(c)}" for c in columns))


def print_record(record: Any, title: str) -> None:
    """Print a single record as a panel, JSON object or plain lines."""
    mode = get_output_mode()
    data = record.to_dict() if hasattr(record, "to_dict") else dict(record)

    if mode == "json":
        print(json.dumps(data, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{k}:[/] {v}" for k, v in data.items())
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        print(title)
        for k, v in data.items():
            print(f"{k}: {'' if v is None else v}")
