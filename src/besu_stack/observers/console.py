# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/observers/console.py
import typer

from .events import BaseEvent

_BASE = ("ts", "run_id", "env", "context")


class ConsoleObserver:
    """One line per event; failures and stuck namespaces in red."""

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _BASE)
        bad = k == "NamespaceStuck" or d.get("status") in ("FAILED", "TIMEOUT") or d.get("failed")
        typer.secho(f"[{d['ts']}] {k} {data}", fg=typer.colors.RED if bad else typer.colors.CYAN)
