# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/keys/sources.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from besu_stack.chart.naming import Naming
from besu_stack.config.models import ChartValues, InlineKey, KeysValues, SecretKeyRef
from besu_stack.errors import ConfigurationError

_HEX = re.compile(r"^[0-9a-fA-F]+$")


# ---------------------------------------------------------------------
# Key source variants
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class IndexedExistingSecrets:
    refs: Tuple[SecretKeyRef, ...]
    kind: str = "indexed-existing-secrets"


@dataclass(frozen=True)
class SharedExistingSecret:
    secret_name: str
    key_prefix: str
    kind: str = "shared-existing-secret"


@dataclass(frozen=True)
class InlineLiteral:
    entries: Tuple[InlineKey, ...]
    kind: str = "inline-literal"


@dataclass(frozen=True)
class RemoteFetch:
    path_template: str
    field: str = "nodekey"
    kind: str = "remote-fetch"


@dataclass(frozen=True)
class NoKey:
    kind: str = "none"


KeySource = Union[IndexedExistingSecrets, SharedExistingSecret, InlineLiteral, RemoteFetch, NoKey]


@dataclass(frozen=True)
class KeyReference:
    """Secret and key to mount as a node's private key file."""

    secret_name: str
    key_name: str


# ---------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------
def _indexed(keys: KeysValues) -> Optional[KeySource]:
    if keys.existing_secrets:
        return IndexedExistingSecrets(refs=tuple(keys.existing_secrets))
    return None


def _shared(keys: KeysValues) -> Optional[KeySource]:
    if keys.existing_secret.name:
        return SharedExistingSecret(
            secret_name=keys.existing_secret.name,
            key_prefix=keys.existing_secret.key_prefix,
        )
    return None


def _inline(keys: KeysValues) -> Optional[KeySource]:
    if keys.inline:
        return InlineLiteral(entries=tuple(keys.inline))
    return None


def _remote(keys: KeysValues) -> Optional[KeySource]:
    rf = keys.remote_fetch
    if rf.enabled:
        if not rf.path_template:
            raise ConfigurationError("keys.remoteFetch.enabled requires keys.remoteFetch.pathTemplate")
        return RemoteFetch(path_template=rf.path_template, field=rf.field)
    return None


# First match wins.
PRECEDENCE: Tuple[Tuple[str, Callable[[KeysValues], Optional[KeySource]]], ...] = (
    ("indexed-existing-secrets", _indexed),
    ("shared-existing-secret", _shared),
    ("inline-literal", _inline),
    ("remote-fetch", _remote),
)


def select_key_source(keys: KeysValues) -> KeySource:
    for _, select in PRECEDENCE:
        source = select(keys)
        if source is not None:
            return source
    return NoKey()


def has_keys(source: KeySource) -> bool:
    # remote fetch counts even though nothing is mounted at render time
    return not isinstance(source, NoKey)


def inline_key_name(role: str, ordinal: int) -> str:
    return f"{role}-{ordinal}"


def _check_range(ordinal: int, size: int, what: str, role: str) -> None:
    if ordinal < 0 or ordinal >= size:
        raise ConfigurationError(
            f"{role} ordinal {ordinal} has no entry in {what} ({size} configured); "
            f"provide one entry per replica"
        )


def key_reference(source: KeySource, role: str, ordinal: int, naming: Naming) -> Optional[KeyReference]:
    """
    Concrete secret reference for one ordinal, or None when nothing is mounted
    (remote fetch, or the node generates its own key).

    Inline lists may be shorter than the replica count: ordinals past the
    end get None and generate their own key. Indexed secrets must cover
    every ordinal.
    """
    if isinstance(source, IndexedExistingSecrets):
        _check_range(ordinal, len(source.refs), "keys.existingSecrets", role)
        ref = source.refs[ordinal]
        return KeyReference(secret_name=ref.secret_name, key_name=ref.key_name)

    if isinstance(source, SharedExistingSecret):
        return KeyReference(secret_name=source.secret_name, key_name=f"{source.key_prefix}{ordinal}")

    if isinstance(source, InlineLiteral):
        if ordinal < 0:
            raise ConfigurationError(f"{role} ordinal {ordinal} is negative")
        if ordinal >= len(source.entries):
            return None
        return KeyReference(secret_name=naming.keys_secret, key_name=inline_key_name(role, ordinal))

    if isinstance(source, (RemoteFetch, NoKey)):
        return None

    raise TypeError(f"Unhandled key source: {source!r}")


def resolve_key(role: str, ordinal: int, values: ChartValues, naming: Naming) -> Optional[KeyReference]:
    return key_reference(select_key_source(values.role(role).keys), role, ordinal, naming)


# ---------------------------------------------------------------------
# Public keys
# ---------------------------------------------------------------------
def normalize_public_key(raw: str) -> str:
    """
    Strip an optional ``0x`` prefix and the ``04`` uncompressed-point marker
    so the remaining 128 hex chars can be embedded in an enode URI.
    """
    key = raw.strip()
    if key[:2].lower() == "0x":
        key = key[2:]
    if len(key) == 130 and key.startswith("04"):
        key = key[2:]
    if key and not _HEX.match(key):
        raise ConfigurationError(f"Public key is not hex: {raw!r}")
    return key.lower()


def public_key_for(source: KeySource, ordinal: int) -> Optional[str]:
    if not isinstance(source, InlineLiteral):
        return None
    if ordinal >= len(source.entries):
        return None
    pub = source.entries[ordinal].public_key
    if not pub:
        return None
    return normalize_public_key(pub)
