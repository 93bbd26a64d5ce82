# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/chart/context.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable

CHART_NAME = "besu-stack"
CHART_VERSION = "0.1.0"
APP_VERSION = "24.12.2"


@dataclass(frozen=True)
class RenderContext:
    """
    Everything a template would otherwise read from ambient chart/release
    state. Passed by value into every resolver and builder.

    ``capabilities`` holds API group/versions (``networking.k8s.io/v1``) and
    group/version/kind triples (``projectcontour.io/v1/HTTPProxy``) reported
    by cluster discovery.
    """

    release_name: str
    namespace: str
    chart_name: str = CHART_NAME
    chart_version: str = CHART_VERSION
    app_version: str = APP_VERSION
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    is_upgrade: bool = False
    cluster_domain: str = "cluster.local"

    def with_capabilities(self, caps: Iterable[str]) -> "RenderContext":
        return replace(self, capabilities=frozenset(caps))
