# tests/keys/test_key_sources.py
from __future__ import annotations

import pytest

from besu_stack.chart.naming import Naming
from besu_stack.config.models import ChartValues, KeysValues
from besu_stack.errors import ConfigurationError
from besu_stack.keys.sources import (
    PRECEDENCE,
    IndexedExistingSecrets,
    InlineLiteral,
    KeyReference,
    NoKey,
    RemoteFetch,
    SharedExistingSecret,
    has_keys,
    key_reference,
    normalize_public_key,
    resolve_key,
    select_key_source,
)

NAMING = Naming(fullname="besu-stack", namespace="besu")


def _keys(data) -> KeysValues:
    return KeysValues.model_validate(data)


def test_precedence_order_is_explicit():
    assert [name for name, _ in PRECEDENCE] == [
        "indexed-existing-secrets",
        "shared-existing-secret",
        "inline-literal",
        "remote-fetch",
    ]


def test_indexed_wins_over_everything():
    keys = _keys({
        "existingSecrets": [{"secretName": "v0"}, {"secretName": "v1"}],
        "existingSecret": {"name": "shared"},
        "inline": [{"privateKey": "0x01"}],
        "remoteFetch": {"enabled": True, "pathTemplate": "kv/data/v-{ordinal}"},
    })
    assert isinstance(select_key_source(keys), IndexedExistingSecrets)


def test_shared_wins_over_inline_and_remote():
    keys = _keys({
        "existingSecret": {"name": "shared", "keyPrefix": "validator-"},
        "inline": [{"privateKey": "0x01"}],
    })
    source = select_key_source(keys)
    assert isinstance(source, SharedExistingSecret)
    assert key_reference(source, "validator", 2, NAMING) == KeyReference("shared", "validator-2")


def test_inline_references_chart_secret():
    source = select_key_source(_keys({"inline": [{"privateKey": "0x01"}, {"privateKey": "0x02"}]}))
    assert isinstance(source, InlineLiteral)
    ref = key_reference(source, "rpc", 1, NAMING)
    assert ref == KeyReference("besu-stack-keys", "rpc-1")


def test_remote_fetch_mounts_nothing():
    source = select_key_source(_keys({"remoteFetch": {"enabled": True, "pathTemplate": "kv/v-{ordinal}"}}))
    assert isinstance(source, RemoteFetch)
    assert has_keys(source)
    assert key_reference(source, "validator", 0, NAMING) is None


def test_remote_fetch_without_template_is_rejected():
    with pytest.raises(ConfigurationError):
        select_key_source(_keys({"remoteFetch": {"enabled": True}}))


def test_no_key_when_nothing_configured():
    source = select_key_source(_keys({}))
    assert isinstance(source, NoKey)
    assert not has_keys(source)
    assert key_reference(source, "validator", 0, NAMING) is None


def test_out_of_range_ordinal_is_a_configuration_error():
    values = ChartValues.model_validate({
        "validators": {
            "replicaCount": 3,
            "keys": {"existingSecrets": [{"secretName": "a"}, {"secretName": "b"}, {"secretName": "c"}]},
        }
    })
    assert resolve_key("validator", 2, values, NAMING) == KeyReference("c", "nodekey")
    with pytest.raises(ConfigurationError, match="ordinal 5"):
        resolve_key("validator", 5, values, NAMING)


def test_inline_shorter_than_replicas_leaves_ordinal_without_key():
    source = select_key_source(_keys({"inline": [{"privateKey": "0x01"}]}))
    assert key_reference(source, "validator", 0, NAMING) == KeyReference("besu-stack-keys", "validator-0")
    assert key_reference(source, "validator", 1, NAMING) is None


@pytest.mark.parametrize(
    "raw",
    [
        "ab" * 64,
        "0x" + "ab" * 64,
        "0x04" + "ab" * 64,
        "04" + "AB" * 64,
    ],
)
def test_normalize_public_key(raw):
    assert normalize_public_key(raw) == "ab" * 64


def test_normalize_rejects_non_hex():
    with pytest.raises(ConfigurationError):
        normalize_public_key("0xnot-hex")
