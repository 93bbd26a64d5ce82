# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/config/settings.py

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PACKAGE_VALUES_DIR = Path(__file__).resolve().parents[1] / "chart" / "values"


@dataclass(frozen=True)
class Settings:
    values_dir: Path
    helm_timeout: str
    namespace_timeout_seconds: int
    poll_interval_seconds: int
    log_dir: Path


@dataclass(frozen=True)
class VaultSettings:
    addr: str
    role: str
    auth_path: str
    token_path: Path
    verify_tls: bool


def load_settings() -> Settings:
    # sensible defaults; override via env
    return Settings(
        values_dir=Path(os.getenv("BESU_STACK_VALUES_DIR", str(PACKAGE_VALUES_DIR))),
        helm_timeout=os.getenv("BESU_STACK_HELM_TIMEOUT", "5m"),
        namespace_timeout_seconds=int(os.getenv("BESU_STACK_NAMESPACE_TIMEOUT", "60")),
        poll_interval_seconds=int(os.getenv("BESU_STACK_POLL_INTERVAL", "2")),
        log_dir=Path(os.getenv("BESU_STACK_LOG_DIR", str(Path.home() / ".besu-stack" / "logs"))),
    )


def load_vault_settings(addr: str | None = None, role: str | None = None) -> VaultSettings:
    return VaultSettings(
        addr=addr or os.getenv("VAULT_ADDR", "http://vault.vault.svc.cluster.local:8200"),
        role=role or os.getenv("VAULT_ROLE", "besu"),
        auth_path=os.getenv("VAULT_AUTH_PATH", "kubernetes"),
        token_path=Path(
            os.getenv(
                "VAULT_SA_TOKEN_PATH",
                "/var/run/secrets/kubernetes.io/serviceaccount/token",
            )
        ),
        verify_tls=os.getenv("VAULT_SKIP_VERIFY", "").lower() not in ("1", "true", "yes"),
    )
