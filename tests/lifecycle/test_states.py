# tests/lifecycle/test_states.py
from __future__ import annotations

import pytest

from besu_stack.errors import LifecycleError
from besu_stack.lifecycle.states import TRANSITIONS, Phase, ReleaseState


def test_install_upgrade_uninstall_path():
    s = ReleaseState(release="besu-stack", namespace="besu")
    s.advance(Phase.installing).advance(Phase.installed)
    assert s.revision == 1

    s.advance(Phase.upgrading).advance(Phase.installed)
    assert s.revision == 2

    s.advance(Phase.uninstalling).advance(Phase.deleted)
    assert s.history == [
        Phase.not_installed,
        Phase.installing,
        Phase.installed,
        Phase.upgrading,
        Phase.installed,
        Phase.uninstalling,
        Phase.deleted,
    ]


def test_stuck_then_force_recovered():
    s = ReleaseState(release="r", namespace="n", phase=Phase.installed)
    s.advance(Phase.uninstalling).advance(Phase.stuck_terminating).advance(Phase.force_recovering)
    s.advance(Phase.deleted)
    assert s.phase is Phase.deleted


@pytest.mark.parametrize(
    "start,target",
    [
        (Phase.not_installed, Phase.installed),
        (Phase.installed, Phase.installing),
        (Phase.upgrading, Phase.uninstalling),
        (Phase.deleted, Phase.installing),
    ],
)
def test_illegal_transitions(start, target):
    s = ReleaseState(release="r", namespace="n", phase=start)
    with pytest.raises(LifecycleError):
        s.advance(target)
    assert s.phase is start


def test_deleted_is_terminal():
    assert TRANSITIONS[Phase.deleted] == frozenset()
    assert all(p in TRANSITIONS for p in Phase)


def test_key():
    assert ReleaseState(release="r", namespace="n").key == "n/r"
