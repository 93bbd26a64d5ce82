# tests/lifecycle/test_namespace_remover.py
from __future__ import annotations

import pytest

from besu_stack.errors import StuckResourceError
from besu_stack.lifecycle.namespace import RELEASE_FINALIZER_KINDS, NamespaceRemover
from conftest import FakeKubectl


def test_plain_delete_waits_until_gone(events, recorder, exec_ctx):
    kubectl = FakeKubectl(namespaces=["besu"])
    result = NamespaceRemover(kubectl, events, exec_ctx).remove("besu", force=False)

    assert result.deleted
    assert kubectl.ops("delete")[0][3] == {"wait": False}
    assert kubectl.ops("strip") == []
    assert recorder.kinds() == ["NamespaceDeleted"]


def test_stuck_without_force_warns_and_returns(events, recorder, exec_ctx):
    kubectl = FakeKubectl(namespaces=["besu"], stuck=["besu"])
    result = NamespaceRemover(kubectl, events, exec_ctx, timeout=10, interval=2).remove("besu", force=False)

    assert not result.deleted
    assert result.phase == "Terminating"
    assert result.waited_s == 10
    assert kubectl.ops("finalize") == []
    assert recorder.kinds() == ["NamespaceStuck"]


def test_force_strips_finalizers_and_finalizes_terminating(events, recorder, exec_ctx):
    kubectl = FakeKubectl(namespaces=["besu"], stuck=["besu"])
    result = NamespaceRemover(kubectl, events, exec_ctx).remove("besu", force=True)

    assert result.deleted
    assert result.finalized
    assert [c[1] for c in kubectl.ops("strip")] == list(RELEASE_FINALIZER_KINDS)
    assert kubectl.ops("finalize") == [("finalize", "besu")]


def test_force_still_stuck_raises(events, recorder, exec_ctx):
    kubectl = FakeKubectl(namespaces=["besu"], stuck=["besu"], finalize_clears=False)
    remover = NamespaceRemover(kubectl, events, exec_ctx, timeout=4, interval=2)

    with pytest.raises(StuckResourceError):
        remover.remove("besu", force=True)

    # once up front, once more after the wait
    assert len(kubectl.ops("finalize")) == 2
    assert recorder.kinds()[-1] == "NamespaceStuck"


def test_force_stuck_tolerated_when_asked(events, exec_ctx):
    kubectl = FakeKubectl(namespaces=["gateway"], stuck=["gateway"], finalize_clears=False)
    remover = NamespaceRemover(kubectl, events, exec_ctx, timeout=4, interval=2)
    result = remover.remove("gateway", force=True, fail_when_stuck=False)
    assert not result.deleted


def test_settle_delay_uses_injected_sleep(events):
    from besu_stack.utils.execution import ExecutionContext

    slept = []
    kubectl = FakeKubectl(namespaces=["besu"])
    NamespaceRemover(kubectl, events, ExecutionContext(sleep=slept.append), settle=2).remove("besu", force=True)
    assert slept[0] == 2
