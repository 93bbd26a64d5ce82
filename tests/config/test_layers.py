# tests/config/test_layers.py
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from besu_stack.config.layers import plan_layers
from besu_stack.config.loader import load_values, load_yaml
from besu_stack.config.models import (
    CloudProvider,
    Environment,
    IngressMode,
    InstallOptions,
    PerformanceTier,
)
from besu_stack.config.settings import PACKAGE_VALUES_DIR
from besu_stack.errors import ConfigurationError


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text))
    return path


@pytest.fixture
def values_dir(tmp_path: Path) -> Path:
    d = tmp_path / "values"
    d.mkdir()
    _write(d / "values-testnet.yaml", """
        validators:
          replicaCount: 4
          persistence:
            size: 20Gi
    """)
    _write(d / "values-performance-low.yaml", """
        validators:
          persistence:
            size: 30Gi
    """)
    _write(d / "values-cloud-aws.yaml", """
        validators:
          persistence:
            storageClass: gp3
    """)
    return d


def test_layer_order_and_last_wins(values_dir: Path, tmp_path: Path):
    user = _write(tmp_path / "mine.yaml", """
        validators:
          persistence:
            size: 40Gi
    """)
    opts = InstallOptions(
        environment=Environment.testnet,
        cloud=CloudProvider.aws,
        values_file=user,
        sets=["validators.persistence.size=50Gi"],
    )

    plan = plan_layers(opts, values_dir)
    assert plan.names() == ["environment", "cloud", "performance", "user"]

    merged, values = load_values(plan)
    assert values.validators.persistence.size == "50Gi"
    assert values.validators.persistence.storage_class == "gp3"
    assert values.validators.replica_count == 4


def test_user_file_beats_performance_without_sets(values_dir: Path, tmp_path: Path):
    user = _write(tmp_path / "mine.yaml", "validators:\n  persistence:\n    size: 40Gi\n")
    opts = InstallOptions(environment=Environment.testnet, values_file=user)
    _, values = load_values(plan_layers(opts, values_dir))
    assert values.validators.persistence.size == "40Gi"


def test_missing_layer_file_is_configuration_error(values_dir: Path):
    opts = InstallOptions(environment=Environment.testnet, cloud=CloudProvider.gke)
    with pytest.raises(ConfigurationError, match="Cloud values file not found"):
        plan_layers(opts, values_dir)


def test_missing_user_file(values_dir: Path, tmp_path: Path):
    opts = InstallOptions(environment=Environment.testnet, values_file=tmp_path / "nope.yaml")
    with pytest.raises(ConfigurationError):
        plan_layers(opts, values_dir)


def test_tier_alias_selects_same_file(values_dir: Path):
    plan = plan_layers(InstallOptions(environment=Environment.staging), values_dir)
    assert plan.layers[0].path.name == "values-testnet.yaml"


def test_ingress_none_is_an_inline_layer(values_dir: Path):
    opts = InstallOptions(environment=Environment.testnet, ingress=IngressMode.none)
    plan = plan_layers(opts, values_dir)
    _, values = load_values(plan)
    assert plan.names()[-1] == "ingress"
    assert values.ingress.enabled is False
    assert values.ingress.auto_detect is False
    assert values.http_proxy.enabled is False


def test_packaged_values_cover_every_selector():
    for env in (Environment.devnet, Environment.testnet, Environment.production):
        for perf in PerformanceTier:
            for cloud in CloudProvider:
                opts = InstallOptions(
                    environment=env,
                    cloud=cloud,
                    performance=perf,
                    cert_manager=True,
                    ingress=IngressMode.contour,
                )
                load_values(plan_layers(opts, PACKAGE_VALUES_DIR))
    for env in (Environment.devnet, Environment.production):
        load_values(plan_layers(InstallOptions(environment=env, openshift=True), PACKAGE_VALUES_DIR))


def test_load_yaml_expands_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("BESU_TEST_HOST", "rpc.example.org")
    f = _write(tmp_path / "v.yaml", "httpProxy:\n  host: ${BESU_TEST_HOST}\n")
    assert load_yaml(f) == {"httpProxy": {"host": "rpc.example.org"}}


def test_load_yaml_rejects_non_mapping(tmp_path: Path):
    f = _write(tmp_path / "v.yaml", "- a\n- b\n")
    with pytest.raises(ConfigurationError):
        load_yaml(f)


def test_invalid_values_rejected(values_dir: Path):
    opts = InstallOptions(environment=Environment.testnet, sets=["validators.replicaCount=0"])
    with pytest.raises(ConfigurationError):
        load_values(plan_layers(opts, values_dir))
