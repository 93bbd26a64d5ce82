# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/config/loader.py

import logging
import os
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml
from pydantic import ValidationError

from besu_stack.config.layers import LayerPlan
from besu_stack.config.models import ChartValues
from besu_stack.config.values import apply_sets, deep_merge
from besu_stack.errors import ConfigurationError

log = logging.getLogger("besu_stack")


def load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    try:
        raw = Path(path).read_text()
    except FileNotFoundError as e:
        raise ConfigurationError(f"Values file not found: {path}") from e

    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Values file {path} must contain a mapping at the top level")
    return data


def merge_plan(plan: LayerPlan) -> Dict[str, Any]:
    """
    Merge every layer of *plan* in order, then apply its --set overrides.
    """
    merged: Dict[str, Any] = {}
    for layer in plan.layers:
        data = load_yaml(layer.path) if layer.path is not None else (layer.inline or {})
        log.debug("Merging values layer '%s' (%s)", layer.name, layer.path or "inline")
        merged = deep_merge(merged, data)

    return apply_sets(merged, plan.sets)


def validate_values(data: Dict[str, Any]) -> ChartValues:
    try:
        return ChartValues.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid chart values:\n{e}") from e


def load_values(plan: LayerPlan) -> Tuple[Dict[str, Any], ChartValues]:
    """
    Returns the raw merged values (handed to helm as-is) together with the
    typed view used by the renderer.
    """
    merged = merge_plan(plan)
    return merged, validate_values(merged)
