# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/utils/execution.py

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class ExecutionContext:
    """
    How a lifecycle run talks to the world: dry run, force, and the clock.
    Tests swap ``sleep`` for a no-op.
    """

    dry_run: bool = False
    force: bool = False
    debug: bool = False
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)
