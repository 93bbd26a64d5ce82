# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/helm/errors.py
class HelmError(RuntimeError):
    """Base class for Helm-related failures."""


class HelmTimeoutError(HelmError):
    """Raised when a helm operation gives up waiting (--wait/--timeout)."""
