"""Colourful, framed rendering of objects for the console."""

from __future__ import annotations

import dataclasses
import enum
import json
import sys
from typing import Any, TextIO

RED = "\033[1;31m"
GREEN = "\033[1;32m"
YELLOW = "\033[1;33m"
BLUE = "\033[1;34m"
MAGENTA = "\033[1;35m"
CYAN = "\033[1;36m"
RESET = "\033[0m"


def _type_name(obj: Any) -> str:
    kind = type(obj)
    module = kind.__module__.rsplit(".", 1)[-1]
    if module == "builtins":
        return kind.__qualname__
    return f"{module}.{kind.__qualname__}"


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, enum.Enum):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serialisable")


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=_json_default)


def _format_value(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, str):
        return f'{GREEN}"{value}"{RESET}'
    if isinstance(value, bool):
        return f"{GREEN}true{RESET}" if value else f"{RED}false{RESET}"
    if isinstance(value, int):
        return f"{BLUE}{value}{RESET}"
    if isinstance(value, (list, tuple)):
        try:
            return f"{MAGENTA}{_to_json(value)}{RESET}"
        except (TypeError, ValueError):
            return f"{MAGENTA}{value}{RESET}"
    return str(value)


def format_pretty(obj: Any) -> str:
    """The framed, coloured text that pretty_print writes."""
    name = _type_name(obj)
    lines = [
        f"{CYAN}╔═ {'═' * len(name)} ═╗{RESET}",
        f"{CYAN}║ {YELLOW}{name}{CYAN} ║{RESET}",
        f"{CYAN}╚{'═' * (len(name) + 4)}{RESET}",
    ]
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        lines.extend(
            f"{YELLOW}{f.name}:{RESET} {_format_value(getattr(obj, f.name))}"
            for f in dataclasses.fields(obj)
        )
    else:
        try:
            lines.append(f"{MAGENTA}{_to_json(obj)}{RESET}")
        except (TypeError, ValueError):
            lines.append(str(obj))
    return "\n" + "".join(line + "\n" for line in lines) + "\n"


def pretty_print(obj: Any, file: TextIO | None = None) -> None:
    print(format_pretty(obj), end="", file=file if file is not None else sys.stdout)