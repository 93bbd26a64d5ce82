# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/chart/builder.py

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Any, Dict

import yaml

from besu_stack.chart.context import RenderContext
from besu_stack.chart.render import RenderedChart

log = logging.getLogger("besu_stack")

_ACTION_OPEN = re.compile(r"\{\{")


def escape_helm(text: str) -> str:
    """
    Make rendered YAML inert for Helm's template engine. Only ``{{`` opens an
    action; a lone ``}}`` is literal text.
    """
    return _ACTION_OPEN.sub('{{ "{{" }}', text)


def _template_name(index: int, manifest: Dict[str, Any]) -> str:
    kind = manifest.get("kind", "object").lower()
    name = manifest.get("metadata", {}).get("name", "unnamed")
    return f"{index:02d}-{kind}-{name}.yaml"


def build_chart(
    values: Dict[str, Any],
    rendered: RenderedChart,
    ctx: RenderContext,
    target_dir: Path,
) -> Path:
    """
    Write a static Helm chart for *rendered* under *target_dir* and return it.

    The chart carries the merged values for reference only; every resource is
    already fully rendered, so helm installs it verbatim and tracks the release.
    """
    chart_dir = Path(target_dir) / ctx.chart_name
    if chart_dir.exists():
        shutil.rmtree(chart_dir)
    templates = chart_dir / "templates"
    templates.mkdir(parents=True)

    chart_yaml = {
        "apiVersion": "v2",
        "name": ctx.chart_name,
        "description": "Hyperledger Besu validator network",
        "type": "application",
        "version": ctx.chart_version,
        "appVersion": ctx.app_version,
    }
    (chart_dir / "Chart.yaml").write_text(yaml.safe_dump(chart_yaml, sort_keys=False))
    (chart_dir / "values.yaml").write_text(yaml.safe_dump(values, sort_keys=False))

    for i, manifest in enumerate(rendered.manifests):
        body = yaml.safe_dump(manifest, sort_keys=False)
        (templates / _template_name(i, manifest)).write_text(escape_helm(body))

    log.debug("Wrote chart with %d templates to %s", len(rendered.manifests), chart_dir)
    return chart_dir


def write_manifests(rendered: RenderedChart, path: Path) -> Path:
    """Multi-document YAML of the rendered resources (no Helm escaping)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump_all(rendered.manifests, sort_keys=False))
    return path
