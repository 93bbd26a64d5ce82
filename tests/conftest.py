# tests/conftest.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest

from besu_stack.config.settings import PACKAGE_VALUES_DIR, Settings
from besu_stack.observers.dispatcher import EventBus, RunEvents
from besu_stack.utils.execution import ExecutionContext


# ---- Fakes for the helm / kubectl runners ----

class FakeHelm:
    """
    In-memory helm. ``releases`` holds (namespace, name) pairs; ``fail`` maps
    a release name to the exception its uninstall/install should raise.
    """

    def __init__(self, releases: Iterable[Tuple[str, str]] = (), fail: Optional[Dict[str, Exception]] = None):
        self.releases: Set[Tuple[str, str]] = set(releases)
        self.fail = dict(fail or {})
        self.calls: List[tuple] = []

    def status(self, release, namespace):
        self.calls.append(("status", release, namespace))
        return (namespace, release) in self.releases

    def list_releases(self, filter_=None, all_namespaces=True):
        self.calls.append(("list", filter_))
        return [
            {"name": name, "namespace": ns}
            for ns, name in sorted(self.releases)
            if not filter_ or filter_ in name
        ]

    def install(self, release, chart, namespace, **kw):
        self.calls.append(("install", release, namespace, kw))
        if release in self.fail:
            raise self.fail[release]
        self.releases.add((namespace, release))

    def upgrade(self, release, chart, namespace, **kw):
        self.calls.append(("upgrade", release, namespace, kw))
        if release in self.fail:
            raise self.fail[release]
        self.releases.add((namespace, release))

    def template(self, release, chart, namespace, **kw):
        self.calls.append(("template", release, namespace))
        return f"# rendered {release} from {Path(chart).name}\n"

    def uninstall(self, release, namespace, **kw):
        self.calls.append(("uninstall", release, namespace, kw))
        if release in self.fail:
            raise self.fail[release]
        self.releases.discard((namespace, release))

    def add_repo(self, name, url, debug=False):
        self.calls.append(("repo-add", name, url))

    def update_repos(self, debug=False):
        self.calls.append(("repo-update",))

    def names(self, op: str) -> List[str]:
        return [c[1] for c in self.calls if c[0] == op]


class FakeKubectl:
    """
    In-memory cluster. A namespace listed in ``stuck`` goes Terminating on
    delete instead of disappearing; ``finalize_namespace`` clears it unless
    ``finalize_clears`` is False.
    """

    def __init__(
        self,
        *,
        namespaces: Iterable[str] = (),
        stuck: Iterable[str] = (),
        pvcs: Optional[Dict[str, List[str]]] = None,
        crds: Iterable[str] = (),
        stuck_crds: Iterable[str] = (),
        finalize_clears: bool = True,
    ):
        self.namespaces = set(namespaces)
        self.stuck = set(stuck)
        self.phases: Dict[str, str] = {ns: "Active" for ns in self.namespaces}
        self.pvcs = dict(pvcs or {})
        self.crds = set(crds)
        self.stuck_crds = set(stuck_crds)
        self.finalize_clears = finalize_clears
        self.calls: List[tuple] = []

    # queries
    def namespace_exists(self, namespace):
        return namespace in self.namespaces

    def namespace_phase(self, namespace):
        return self.phases.get(namespace) if namespace in self.namespaces else None

    def crd_exists(self, name):
        return name in self.crds

    def list_names(self, resource, namespace=None, all_namespaces=False):
        if resource == "pvc":
            return [(namespace, n) for n in self.pvcs.get(namespace, [])]
        return []

    def get_field(self, resource, name, jsonpath, namespace=None):
        return None

    # mutations
    def delete(self, resource, name=None, **kw):
        self.calls.append(("delete", resource, name, kw))
        if resource == "namespace" and name in self.namespaces:
            if name in self.stuck:
                self.phases[name] = "Terminating"
            else:
                self.namespaces.discard(name)
        if resource == "crd" and name in self.crds:
            if name in self.stuck_crds:
                return 1
            self.crds.discard(name)
        return 0

    def strip_finalizers(self, resource, namespace=None, all_namespaces=False):
        self.calls.append(("strip", resource, namespace))
        return 0

    def patch_finalizers(self, resource, name, namespace=None):
        self.calls.append(("patch", resource, name))
        if resource == "crd":
            self.stuck_crds.discard(name)
        return 0

    def finalize_namespace(self, namespace):
        self.calls.append(("finalize", namespace))
        if self.finalize_clears:
            self.namespaces.discard(namespace)
        return 0

    def label(self, resource, name, namespace, label):
        self.calls.append(("label", resource, name, namespace, label))
        return 0

    def rollout_status(self, kind_name, namespace, timeout="120s"):
        self.calls.append(("rollout", kind_name, namespace))
        return 0

    def apply_objects(self, objects):
        self.calls.append(("apply", list(objects)))

    def ops(self, op: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == op]


class Recorder:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [type(e).__name__ for e in self.events]


# ---- Fixtures ----

@pytest.fixture(autouse=True)
def _reset_besu_logger():
    yield
    logger = logging.getLogger("besu_stack")
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def events(recorder) -> RunEvents:
    return RunEvents(EventBus([recorder]), env="test", run_id="run-test")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        values_dir=PACKAGE_VALUES_DIR,
        helm_timeout="5m",
        namespace_timeout_seconds=60,
        poll_interval_seconds=2,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def exec_ctx() -> ExecutionContext:
    return ExecutionContext(sleep=lambda s: None)


@pytest.fixture
def which():
    return lambda tool: f"/usr/local/bin/{tool}"
