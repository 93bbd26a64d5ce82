# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/observers/dispatcher.py
from __future__ import annotations

import logging
import uuid
from typing import Any, List, Optional, Protocol, Type

from .events import BaseEvent, new_ctx

log = logging.getLogger("besu_stack")


class Observer(Protocol):
    """Receives every lifecycle event of a run."""

    def notify(self, event: BaseEvent) -> None: ...


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers = list(observers or [])

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as e:
                # observers must not break a run
                log.debug("Observer %s failed on %s: %s", type(ob).__name__, type(event).__name__, e)


class RunEvents:
    """Stamps every event of one run with the same run_id/env/context."""

    def __init__(self, bus: EventBus, *, env: str, context: Optional[str] = None, run_id: Optional[str] = None):
        self.bus = bus
        self.env = env
        self.context = context
        self.run_id = run_id or str(uuid.uuid4())

    def emit(self, event_cls: Type[BaseEvent], **fields: Any) -> None:
        self.bus.emit(event_cls(**new_ctx(self.env, self.context, self.run_id), **fields))
