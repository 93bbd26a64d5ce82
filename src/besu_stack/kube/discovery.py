# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/kube/discovery.py

from __future__ import annotations

from typing import FrozenSet, Iterable, Protocol, Set

from .kubectl import KubectlRunner


class ClusterDiscovery(Protocol):
    def capabilities(self) -> FrozenSet[str]: ...

    def has_crd(self, name: str) -> bool: ...


class KubectlDiscovery:
    """
    Capability set from the live cluster: every served ``group/version`` plus
    ``group/version/Kind`` for each CRD version.
    """

    def __init__(self, kubectl: KubectlRunner):
        self.kubectl = kubectl

    def capabilities(self) -> FrozenSet[str]:
        caps: Set[str] = set(self.kubectl.api_versions())
        for crd in self.kubectl.crds():
            spec = crd.get("spec", {})
            group = spec.get("group")
            kind = spec.get("names", {}).get("kind")
            for v in spec.get("versions", []):
                if v.get("served", True) and group and kind:
                    caps.add(f"{group}/{v['name']}")
                    caps.add(f"{group}/{v['name']}/{kind}")
        # built-in kinds the renderer cares about
        if "networking.k8s.io/v1" in caps:
            caps.add("networking.k8s.io/v1/Ingress")
        return frozenset(caps)

    def has_crd(self, name: str) -> bool:
        return self.kubectl.crd_exists(name)


class StaticDiscovery:
    """Fixed capability set, for offline rendering."""

    def __init__(self, caps: Iterable[str] = (), crds: Iterable[str] = ()):
        self._caps = frozenset(caps)
        self._crds = frozenset(crds)

    def capabilities(self) -> FrozenSet[str]:
        return self._caps

    def has_crd(self, name: str) -> bool:
        return name in self._crds
