# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # devnet/testnet/production/support/uninstall
    context: Optional[str]  # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Release lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class InstallStarted(BaseEvent):
    release: str
    namespace: str
    layers: List[str]
    upgrade: bool = False

@dataclass(frozen=True)
class ReleaseInstalled(BaseEvent):
    release: str
    namespace: str
    upgraded: bool
    dry_run: bool = False

@dataclass(frozen=True)
class ReleaseUninstalled(BaseEvent):
    release: str
    namespace: str
    status: str       # "OK" | "TIMEOUT" | "MISSING" | "FAILED"
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Namespace removal
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class FinalizersStripped(BaseEvent):
    namespace: Optional[str]
    resource: str
    count: int

@dataclass(frozen=True)
class NamespaceDeleted(BaseEvent):
    namespace: str
    waited_s: int

@dataclass(frozen=True)
class NamespaceStuck(BaseEvent):
    namespace: str
    phase: Optional[str]
    forced: bool


# ---------------------------------------------------------------------
# Support infrastructure & summaries
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ComponentRemoved(BaseEvent):
    component: str
    namespace: str
    crds: int

@dataclass(frozen=True)
class FleetSummary(BaseEvent):
    ok: int
    failed: int
    failures: Dict[str, str]
