# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/topology/resolver.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from besu_stack.chart.naming import Naming
from besu_stack.config.models import ChartValues
from besu_stack.keys.sources import KeySource, NoKey, public_key_for, select_key_source

log = logging.getLogger("besu_stack")

VALIDATOR = "validator"


@dataclass(frozen=True)
class NetworkTopology:
    replica_count: int
    peer_port: int
    explicit_peers: List[str] = field(default_factory=list)
    derived_peers: List[str] = field(default_factory=list)

    @property
    def peers(self) -> List[str]:
        return list(self.explicit_peers) if self.explicit_peers else list(self.derived_peers)


def enode_uri(public_key: str, host: str, port: int) -> str:
    return f"enode://{public_key}@{host}:{port}?discport={port}"


def resolve_static_peers(
    explicit_peers: Sequence[str],
    replica_count: int,
    peer_port: int,
    naming: Naming,
    key_source: KeySource | None = None,
    role: str = VALIDATOR,
) -> List[str]:
    """
    Ordered static-peer list for the network.

    A non-empty operator list is returned verbatim. Otherwise one entry per
    ordinal: a full enode URI when that ordinal has a known public key, a
    bare ``host:port`` otherwise.
    """
    if explicit_peers:
        return list(explicit_peers)

    source = key_source if key_source is not None else NoKey()
    peers: List[str] = []
    dns_only: List[int] = []

    for ordinal in range(replica_count):
        host = naming.hostname(role, ordinal)
        pub = public_key_for(source, ordinal)
        if pub:
            peers.append(enode_uri(pub, host, peer_port))
        else:
            dns_only.append(ordinal)
            peers.append(f"{host}:{peer_port}")

    if dns_only and len(dns_only) < replica_count:
        log.warning(
            "Public keys cover only %d of %d %s replicas; ordinals %s use DNS-only peer addresses",
            replica_count - len(dns_only),
            replica_count,
            role,
            ", ".join(str(i) for i in dns_only),
        )
    return peers


def resolve_bootnodes(
    peers: Sequence[str],
    explicit_bootnodes: Sequence[str] = (),
    bootnode_count: Optional[int] = None,
) -> List[str]:
    """
    Bootnodes: the explicit list when given, else the first *bootnode_count*
    peers that carry a full enode URI (DNS-only entries cannot bootstrap
    discovery).
    """
    if explicit_bootnodes:
        return list(explicit_bootnodes)

    enodes = [p for p in peers if p.startswith("enode://")]
    if bootnode_count is None:
        return enodes
    return enodes[:bootnode_count]


def static_nodes_json(peers: Sequence[str]) -> str:
    return json.dumps(list(peers), indent=2) + "\n"


def resolve_topology(values: ChartValues, naming: Naming) -> NetworkTopology:
    validators = values.validators
    source = select_key_source(validators.keys)
    derived = resolve_static_peers(
        [],
        validators.replica_count,
        values.p2p.port,
        naming,
        source,
    ) if not values.p2p.static_nodes else []
    return NetworkTopology(
        replica_count=validators.replica_count,
        peer_port=values.p2p.port,
        explicit_peers=list(values.p2p.static_nodes),
        derived_peers=derived,
    )
