# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/states.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from besu_stack.errors import LifecycleError

log = logging.getLogger("besu_stack")


class Phase(str, Enum):
    not_installed = "NotInstalled"
    installing = "Installing"
    installed = "Installed"
    upgrading = "Upgrading"
    uninstalling = "Uninstalling"
    deleted = "Deleted"
    stuck_terminating = "StuckTerminating"
    force_recovering = "ForceRecovering"


TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.not_installed: frozenset({Phase.installing, Phase.uninstalling}),
    Phase.installing: frozenset({Phase.installed, Phase.not_installed}),
    Phase.installed: frozenset({Phase.upgrading, Phase.uninstalling}),
    Phase.upgrading: frozenset({Phase.installed}),
    Phase.uninstalling: frozenset({Phase.deleted, Phase.stuck_terminating, Phase.force_recovering}),
    Phase.stuck_terminating: frozenset({Phase.force_recovering, Phase.deleted}),
    Phase.force_recovering: frozenset({Phase.deleted, Phase.stuck_terminating}),
    Phase.deleted: frozenset(),
}


@dataclass
class ReleaseState:
    """
    One managed unit, a ``(namespace, release)`` pair, and where it is in its
    lifecycle. ``history`` records every phase entered, in order.
    """

    release: str
    namespace: str
    revision: Optional[int] = None
    phase: Phase = Phase.not_installed
    history: List[Phase] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.phase)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.release}"

    def can(self, target: Phase) -> bool:
        return target in TRANSITIONS[self.phase]

    def advance(self, target: Phase) -> "ReleaseState":
        if not self.can(target):
            raise LifecycleError(f"{self.key}: illegal transition {self.phase.value} -> {target.value}")
        log.debug("%s: %s -> %s", self.key, self.phase.value, target.value)
        self.phase = target
        self.history.append(target)
        if target is Phase.installed:
            self.revision = (self.revision or 0) + 1
        return self
