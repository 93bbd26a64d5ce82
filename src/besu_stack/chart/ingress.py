# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/chart/ingress.py

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Tuple

from besu_stack.config.models import ChartValues

HTTPPROXY_API = "projectcontour.io/v1/HTTPProxy"
INGRESS_API = "networking.k8s.io/v1/Ingress"


class IngressKind(str, Enum):
    http_proxy = "HTTPProxy"
    ingress = "Ingress"


# Auto-detection preference, most specific first.
INGRESS_PREFERENCE: Tuple[Tuple[str, IngressKind], ...] = (
    (HTTPPROXY_API, IngressKind.http_proxy),
    (INGRESS_API, IngressKind.ingress),
)


def detect_ingress_kind(capabilities: Iterable[str]) -> Optional[IngressKind]:
    caps = set(capabilities)
    for api, kind in INGRESS_PREFERENCE:
        if api in caps:
            return kind
    return None


def select_ingress_kind(values: ChartValues, capabilities: Iterable[str]) -> Optional[IngressKind]:
    """
    Explicit enablement wins; HTTPProxy is checked before Ingress. With
    neither enabled, auto-detect from the cluster capabilities.
    """
    if values.http_proxy.enabled:
        return IngressKind.http_proxy
    if values.ingress.enabled:
        return IngressKind.ingress
    if values.ingress.auto_detect:
        return detect_ingress_kind(capabilities)
    return None
