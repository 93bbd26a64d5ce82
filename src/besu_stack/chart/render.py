# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/chart/render.py

from __future__ import annotations

import hashlib
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from besu_stack.chart.context import RenderContext
from besu_stack.chart.ingress import IngressKind, select_ingress_kind
from besu_stack.chart.naming import Naming, common_labels, selector_labels
from besu_stack.config.models import ChartValues, RoleValues
from besu_stack.keys.sources import (
    InlineLiteral,
    KeySource,
    RemoteFetch,
    has_keys,
    inline_key_name,
    key_reference,
    select_key_source,
)
from besu_stack.topology.resolver import resolve_bootnodes, resolve_topology, static_nodes_json

log = logging.getLogger("besu_stack")

BESU_BIN = "/opt/besu/bin/besu"
DATA_PATH = "/data"
GENESIS_DIR = "/etc/besu/genesis"
STATIC_NODES_DIR = "/etc/besu/static-nodes"
KEYS_DIR = "/keys"

Manifest = Dict[str, Any]


def sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class RenderedChart:
    """Output of one render: manifests plus what was decided along the way."""

    manifests: List[Manifest] = field(default_factory=list)
    static_peers: List[str] = field(default_factory=list)
    bootnodes: List[str] = field(default_factory=list)
    ingress_kind: Optional[IngressKind] = None
    key_sources: Dict[str, KeySource] = field(default_factory=dict)

    def by_kind(self, kind: str) -> List[Manifest]:
        return [m for m in self.manifests if m.get("kind") == kind]

    def find(self, kind: str, name: str) -> Optional[Manifest]:
        for m in self.by_kind(kind):
            if m["metadata"]["name"] == name:
                return m
        return None


def _meta(name: str, ctx: RenderContext, labels: Dict[str, str], annotations: Dict[str, str] | None = None) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"name": name, "namespace": ctx.namespace, "labels": labels}
    if annotations:
        meta["annotations"] = dict(annotations)
    return meta


def _active_roles(values: ChartValues) -> List[str]:
    roles = ["validator"]
    if values.rpc.enabled and values.rpc.replica_count > 0:
        roles.append("rpc")
    return roles


# ---------------------------------------------------------------------
# ConfigMaps / Secret
# ---------------------------------------------------------------------
def genesis_configmap(values: ChartValues, naming: Naming, ctx: RenderContext) -> Optional[Manifest]:
    if not values.genesis.raw:
        return None
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _meta(naming.genesis_configmap, ctx, common_labels(naming, ctx)),
        # opaque; passed through untouched
        "data": {"genesis.json": values.genesis.raw},
    }


def static_nodes_configmap(peers_json: str, naming: Naming, ctx: RenderContext) -> Manifest:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _meta(naming.static_nodes_configmap, ctx, common_labels(naming, ctx)),
        "data": {"static-nodes.json": peers_json},
    }


def inline_keys_secret(
    sources: Dict[str, KeySource], naming: Naming, ctx: RenderContext
) -> Optional[Manifest]:
    data: Dict[str, str] = {}
    for role, source in sources.items():
        if isinstance(source, InlineLiteral):
            for ordinal, entry in enumerate(source.entries):
                data[inline_key_name(role, ordinal)] = entry.private_key
    if not data:
        return None
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _meta(naming.keys_secret, ctx, common_labels(naming, ctx)),
        "type": "Opaque",
        "stringData": data,
    }


# ---------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------
def headless_service(values: ChartValues, naming: Naming, ctx: RenderContext, role: str) -> Manifest:
    port = values.p2p.port
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _meta(naming.headless_service(role), ctx, common_labels(naming, ctx, role)),
        "spec": {
            "clusterIP": "None",
            # peers must resolve before they report ready
            "publishNotReadyAddresses": True,
            "selector": selector_labels(naming, ctx, role),
            "ports": [
                {"name": "p2p-tcp", "port": port, "targetPort": port, "protocol": "TCP"},
                {"name": "p2p-udp", "port": port, "targetPort": port, "protocol": "UDP"},
            ],
        },
    }


def client_service(values: ChartValues, naming: Naming, ctx: RenderContext, role: str) -> Manifest:
    rv = values.role(role)
    ports = values.ports
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _meta(
            naming.client_service(role), ctx, common_labels(naming, ctx, role), rv.service.annotations
        ),
        "spec": {
            "type": rv.service.type,
            "selector": selector_labels(naming, ctx, role),
            "ports": [
                {"name": "http", "port": ports.http, "targetPort": "http"},
                {"name": "ws", "port": ports.ws, "targetPort": "ws"},
                {"name": "metrics", "port": ports.metrics, "targetPort": "metrics"},
            ],
        },
    }


# ---------------------------------------------------------------------
# StatefulSet
# ---------------------------------------------------------------------
def besu_args(values: ChartValues, role: str, bootnodes: List[str], has_genesis: bool) -> List[str]:
    ports = values.ports
    args = [
        f"--data-path={DATA_PATH}",
        f"--p2p-port={values.p2p.port}",
        f"--discovery-enabled={'true' if values.p2p.discovery else 'false'}",
        f"--static-nodes-file={STATIC_NODES_DIR}/static-nodes.json",
        "--rpc-http-enabled",
        "--rpc-http-host=0.0.0.0",
        f"--rpc-http-port={ports.http}",
        "--rpc-ws-enabled",
        "--rpc-ws-host=0.0.0.0",
        f"--rpc-ws-port={ports.ws}",
        "--metrics-enabled",
        "--metrics-host=0.0.0.0",
        f"--metrics-port={ports.metrics}",
        "--host-allowlist=*",
    ]
    if has_genesis:
        args.append(f"--genesis-file={GENESIS_DIR}/genesis.json")
    else:
        args.append("--network=dev")
    if bootnodes:
        args.append(f"--bootnodes={','.join(bootnodes)}")
    args.extend(values.role(role).extra_args)
    return args


def _secret_key_volume(
    source: KeySource, role: str, replicas: int, naming: Naming
) -> Optional[Dict[str, Any]]:
    """
    Projected volume exposing each covered ordinal's key as ``key-<ordinal>``.
    Resolving every ordinal here surfaces out-of-range indexed references at
    render time. Returns None when no ordinal has a key to mount.
    """
    by_secret: Dict[str, List[Dict[str, str]]] = {}
    for ordinal in range(replicas):
        ref = key_reference(source, role, ordinal, naming)
        if ref is None:
            continue
        by_secret.setdefault(ref.secret_name, []).append({"key": ref.key_name, "path": f"key-{ordinal}"})

    if not by_secret:
        return None
    return {
        "name": "node-keys",
        "projected": {
            "defaultMode": 0o400,
            "sources": [
                {"secret": {"name": name, "items": items}} for name, items in by_secret.items()
            ],
        },
    }


def _mounted_ordinals(key_volume: Dict[str, Any]) -> int:
    return sum(len(src["secret"]["items"]) for src in key_volume["projected"]["sources"])


def _fetch_argv(values: ChartValues, source: RemoteFetch) -> List[str]:
    return list(values.key_fetch.command) + [
        "--path-template", source.path_template,
        "--field", source.field,
        "--output", values.key_fetch.key_path,
    ]


def _vault_env(values: ChartValues) -> List[Dict[str, str]]:
    return [
        {"name": "VAULT_ADDR", "value": values.key_fetch.vault_addr},
        {"name": "VAULT_ROLE", "value": values.key_fetch.vault_role},
    ]


def _fetch_init_container(values: ChartValues, source: RemoteFetch) -> Dict[str, Any]:
    """Writes the key into the shared volume, then exits; the node image stays stock."""
    kf = values.key_fetch
    return {
        "name": "fetch-key",
        "image": kf.init_image,
        "imagePullPolicy": values.image.pull_policy,
        "command": _fetch_argv(values, source),
        "env": _vault_env(values),
        "volumeMounts": [{"name": "node-key", "mountPath": posixpath.dirname(kf.key_path)}],
    }


def _container_command(
    values: ChartValues,
    source: KeySource,
    key_volume: Optional[Dict[str, Any]],
    args: List[str],
    replicas: int,
) -> Dict[str, Any]:
    if isinstance(source, RemoteFetch):
        key_args = args + [f"--node-private-key-file={values.key_fetch.key_path}"]
        if values.key_fetch.init_image:
            return {"command": [BESU_BIN], "args": key_args}
        return {"command": _fetch_argv(values, source) + ["--", BESU_BIN], "args": key_args}

    if key_volume is not None:
        # one pod template serves every ordinal; pick the key by hostname suffix
        key_file = f'{KEYS_DIR}/key-"${{HOSTNAME##*-}}"'
        if _mounted_ordinals(key_volume) < replicas:
            # ordinals without a mounted key generate their own
            script = (
                f"k={key_file}; "
                f'if [ -f "$k" ]; then exec {BESU_BIN} --node-private-key-file="$k" "$@"; fi; '
                f'exec {BESU_BIN} "$@"'
            )
        else:
            script = f'exec {BESU_BIN} --node-private-key-file={key_file} "$@"'
        return {"command": ["/bin/sh", "-c", script, "besu"], "args": args}

    return {"command": [BESU_BIN], "args": args}


def statefulset(
    values: ChartValues,
    naming: Naming,
    ctx: RenderContext,
    role: str,
    source: KeySource,
    bootnodes: List[str],
    checksums: Dict[str, str],
) -> Manifest:
    rv: RoleValues = values.role(role)
    ports = values.ports
    has_genesis = bool(values.genesis.raw)
    args = besu_args(values, role, bootnodes, has_genesis)

    volumes: List[Dict[str, Any]] = [
        {"name": "static-nodes", "configMap": {"name": naming.static_nodes_configmap}},
    ]
    mounts: List[Dict[str, Any]] = [
        {"name": "data", "mountPath": DATA_PATH},
        {"name": "static-nodes", "mountPath": STATIC_NODES_DIR, "readOnly": True},
    ]
    if has_genesis:
        volumes.append({"name": "genesis", "configMap": {"name": naming.genesis_configmap}})
        mounts.append({"name": "genesis", "mountPath": GENESIS_DIR, "readOnly": True})

    key_volume = _secret_key_volume(source, role, rv.replica_count, naming)
    if key_volume is not None:
        volumes.append(key_volume)
        mounts.append({"name": "node-keys", "mountPath": KEYS_DIR, "readOnly": True})
    elif isinstance(source, RemoteFetch):
        volumes.append({"name": "node-key", "emptyDir": {"medium": "Memory"}})
        mounts.append({"name": "node-key", "mountPath": posixpath.dirname(values.key_fetch.key_path)})

    container: Dict[str, Any] = {
        "name": "besu",
        "image": values.image.ref,
        "imagePullPolicy": values.image.pull_policy,
        **_container_command(values, source, key_volume, args, rv.replica_count),
        "ports": [
            {"name": "p2p-tcp", "containerPort": values.p2p.port, "protocol": "TCP"},
            {"name": "p2p-udp", "containerPort": values.p2p.port, "protocol": "UDP"},
            {"name": "http", "containerPort": ports.http},
            {"name": "ws", "containerPort": ports.ws},
            {"name": "metrics", "containerPort": ports.metrics},
        ],
        "volumeMounts": mounts,
        "readinessProbe": {
            "httpGet": {"path": "/readiness?minPeers=0&maxBlocksBehind=10", "port": "http"},
            "initialDelaySeconds": 30,
            "periodSeconds": 10,
        },
        "livenessProbe": {
            "httpGet": {"path": "/liveness", "port": "http"},
            "initialDelaySeconds": 60,
            "periodSeconds": 30,
        },
    }
    if rv.resources:
        container["resources"] = rv.resources
    pod_spec: Dict[str, Any] = {"containers": [container], "volumes": volumes}
    if isinstance(source, RemoteFetch):
        if values.key_fetch.init_image:
            pod_spec["initContainers"] = [_fetch_init_container(values, source)]
        else:
            container["env"] = _vault_env(values)
    if rv.node_selector:
        pod_spec["nodeSelector"] = rv.node_selector
    if isinstance(source, RemoteFetch) and values.key_fetch.service_account:
        pod_spec["serviceAccountName"] = values.key_fetch.service_account
    if not values.openshift.enabled:
        # OpenShift assigns its own uid range through SCCs
        pod_spec["securityContext"] = {"runAsUser": 1000, "runAsGroup": 1000, "fsGroup": 1000}

    spec: Dict[str, Any] = {
        "serviceName": naming.headless_service(role),
        "replicas": rv.replica_count,
        "podManagementPolicy": "Parallel",
        "selector": {"matchLabels": selector_labels(naming, ctx, role)},
        "template": {
            "metadata": {
                "labels": {**common_labels(naming, ctx, role), **selector_labels(naming, ctx, role)},
                "annotations": {f"checksum/{k}": v for k, v in sorted(checksums.items())},
            },
            "spec": pod_spec,
        },
    }

    if rv.persistence.enabled:
        claim_spec: Dict[str, Any] = {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": rv.persistence.size}},
        }
        if rv.persistence.storage_class:
            claim_spec["storageClassName"] = rv.persistence.storage_class
        spec["volumeClaimTemplates"] = [{"metadata": {"name": "data"}, "spec": claim_spec}]
    else:
        volumes.append({"name": "data", "emptyDir": {}})

    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": _meta(naming.workload(role), ctx, common_labels(naming, ctx, role)),
        "spec": spec,
    }


# ---------------------------------------------------------------------
# Ingress / HTTPProxy / Certificate / ServiceMonitor
# ---------------------------------------------------------------------
def _exposed_role(values: ChartValues) -> str:
    return "rpc" if "rpc" in _active_roles(values) else "validator"


def _tls_secret(values: ChartValues, naming: Naming) -> str:
    return values.tls.secret_name or f"{naming.fullname}-tls"


def ingress(values: ChartValues, naming: Naming, ctx: RenderContext) -> Manifest:
    role = _exposed_role(values)
    annotations = dict(values.ingress.annotations)
    cm = values.tls.cert_manager
    if cm.enabled:
        key = "cert-manager.io/cluster-issuer" if cm.issuer_kind == "ClusterIssuer" else "cert-manager.io/issuer"
        annotations[key] = cm.issuer

    rule: Dict[str, Any] = {
        "http": {
            "paths": [
                {
                    "path": "/",
                    "pathType": "Prefix",
                    "backend": {
                        "service": {"name": naming.client_service(role), "port": {"name": "http"}},
                    },
                }
            ]
        }
    }
    if values.ingress.host:
        rule["host"] = values.ingress.host

    spec: Dict[str, Any] = {"rules": [rule]}
    if values.ingress.class_name:
        spec["ingressClassName"] = values.ingress.class_name
    if (cm.enabled or values.tls.secret_name) and values.ingress.host:
        spec["tls"] = [{"hosts": [values.ingress.host], "secretName": _tls_secret(values, naming)}]

    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": _meta(naming.fullname, ctx, common_labels(naming, ctx), annotations),
        "spec": spec,
    }


def http_proxy(values: ChartValues, naming: Naming, ctx: RenderContext) -> Manifest:
    role = _exposed_role(values)
    host = values.http_proxy.host or values.ingress.host
    spec: Dict[str, Any] = {}
    if host:
        spec["virtualhost"] = {"fqdn": host}
        if values.tls.cert_manager.enabled or values.tls.secret_name:
            spec["virtualhost"]["tls"] = {"secretName": _tls_secret(values, naming)}
    else:
        # without an fqdn Contour treats the proxy as an include target only
        log.warning("httpProxy.host is not set; the RPC endpoint will not be routed until it is")

    spec["routes"] = [
        {
            "conditions": [{"prefix": "/"}],
            "services": [{"name": naming.client_service(role), "port": values.ports.http}],
        },
        {
            "conditions": [{"prefix": "/ws"}],
            "enableWebsockets": True,
            "services": [{"name": naming.client_service(role), "port": values.ports.ws}],
        },
    ]

    return {
        "apiVersion": "projectcontour.io/v1",
        "kind": "HTTPProxy",
        "metadata": _meta(naming.fullname, ctx, common_labels(naming, ctx)),
        "spec": spec,
    }


def certificate(values: ChartValues, naming: Naming, ctx: RenderContext, host: str) -> Manifest:
    cm = values.tls.cert_manager
    return {
        "apiVersion": "cert-manager.io/v1",
        "kind": "Certificate",
        "metadata": _meta(naming.fullname, ctx, common_labels(naming, ctx)),
        "spec": {
            "secretName": _tls_secret(values, naming),
            "dnsNames": [host],
            "issuerRef": {"name": cm.issuer, "kind": cm.issuer_kind},
        },
    }


def service_monitor(values: ChartValues, naming: Naming, ctx: RenderContext, role: str) -> Manifest:
    labels = {**common_labels(naming, ctx, role), **values.service_monitor.labels}
    return {
        "apiVersion": "monitoring.coreos.com/v1",
        "kind": "ServiceMonitor",
        "metadata": _meta(naming.workload(role), ctx, labels),
        "spec": {
            "selector": {"matchLabels": selector_labels(naming, ctx, role)},
            "namespaceSelector": {"matchNames": [ctx.namespace]},
            "endpoints": [
                {"port": "metrics", "path": "/metrics", "interval": values.service_monitor.interval},
            ],
        },
    }


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------
def render_manifests(values: ChartValues, ctx: RenderContext) -> RenderedChart:
    """
    Render every resource of the network for *values* in *ctx*.

    Pure: the capability set arrives through *ctx*, nothing is read from the
    cluster here.
    """
    naming = Naming.from_values(values, ctx)
    out = RenderedChart()

    roles = _active_roles(values)
    out.key_sources = {role: select_key_source(values.role(role).keys) for role in roles}

    topology = resolve_topology(values, naming)
    out.static_peers = topology.peers
    out.bootnodes = resolve_bootnodes(out.static_peers, values.p2p.bootnodes, values.p2p.bootnode_count)
    peers_json = static_nodes_json(out.static_peers)

    checksums = {"static-nodes": sha256(peers_json)}
    genesis = genesis_configmap(values, naming, ctx)
    if genesis is not None:
        checksums["genesis"] = sha256(values.genesis.raw)
        out.manifests.append(genesis)
    out.manifests.append(static_nodes_configmap(peers_json, naming, ctx))

    secret = inline_keys_secret(out.key_sources, naming, ctx)
    if secret is not None:
        checksums["keys"] = sha256(repr(sorted(secret["stringData"].items())))
        out.manifests.append(secret)

    for role in roles:
        out.manifests.append(headless_service(values, naming, ctx, role))
        out.manifests.append(client_service(values, naming, ctx, role))

    for role in roles:
        source = out.key_sources[role]
        role_checksums = dict(checksums)
        if not has_keys(source):
            role_checksums.pop("keys", None)
        out.manifests.append(
            statefulset(values, naming, ctx, role, source, out.bootnodes, role_checksums)
        )

    out.ingress_kind = select_ingress_kind(values, ctx.capabilities)
    if out.ingress_kind is IngressKind.http_proxy:
        proxy = http_proxy(values, naming, ctx)
        out.manifests.append(proxy)
        fqdn = proxy["spec"].get("virtualhost", {}).get("fqdn")
        if values.tls.cert_manager.enabled and fqdn:
            out.manifests.append(certificate(values, naming, ctx, fqdn))
    elif out.ingress_kind is IngressKind.ingress:
        out.manifests.append(ingress(values, naming, ctx))

    if values.service_monitor.enabled:
        for role in roles:
            out.manifests.append(service_monitor(values, naming, ctx, role))

    return out
