# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/helm/cli_runner.py

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Sequence

from .errors import HelmError, HelmTimeoutError

log = logging.getLogger("besu_stack")


class HelmCliRunner:
    """
    A pragmatic wrapper around the `helm` CLI.
    - Mirrors the human workflow: 'status', 'install', 'upgrade', 'template', 'uninstall', 'list'.
    - Testable by mocking subprocess.run.
    """

    def __init__(self, kube_context: str | None = None, env: dict[str, str] | None = None):
        self.kube_context = kube_context
        self.env = env or {}

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["helm"]
        if self.kube_context:
            cmd += ["--kube-context", self.kube_context]
        return cmd

    def _run(
        self,
        argv: List[str],
        allow_rc: set[int] | None = None,
        capture: bool = False,
        stream: bool = False,
    ) -> subprocess.CompletedProcess:
        """
        Run a helm command.
        If `stream=True`, stream live stdout/stderr to the console (useful for --debug).
        If `capture=True`, capture and return output instead.
        """
        allow_rc = allow_rc or {0}
        log.debug("helm: %s", " ".join(argv))

        if stream:
            process = subprocess.Popen(
                argv, text=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, env=self.env or None
            )
            stdout_lines = []
            for line in iter(process.stdout.readline, ""):
                print(line, end="")
                stdout_lines.append(line)
            process.wait()
            cp = subprocess.CompletedProcess(argv, process.returncode, "".join(stdout_lines), "")
        else:
            cp = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=capture,
                env=self.env or None,
            )

        if cp.returncode not in allow_rc:
            # streamed runs merge stderr into stdout
            output = (cp.stdout if stream else getattr(cp, "stderr", "")) or ""
            if "timed out" in output or "context deadline exceeded" in output:
                raise HelmTimeoutError(f"helm timed out (rc={cp.returncode}) for {argv!r}\n{output}")
            raise HelmError(f"helm failed (rc={cp.returncode}) for {argv!r}\n{output}")
        return cp

    @staticmethod
    def _value_args(values_files: Sequence[Path | str] = (), sets: Sequence[str] = ()) -> list[str]:
        args: list[str] = []
        for f in values_files:
            args += ["-f", str(f)]
        for s in sets:
            args += ["--set", s]
        return args

    # ------------------------- release queries -------------------------

    def status(self, release: str, namespace: str) -> bool:
        """True if *release* exists in *namespace*."""
        argv = self._base() + ["status", release, "-n", namespace]
        cp = self._run(argv, allow_rc={0, 1}, capture=True)
        return cp.returncode == 0

    def list_releases(self, filter_: str | None = None, all_namespaces: bool = True) -> List[Dict]:
        argv = self._base() + ["list", "-o", "json"]
        if all_namespaces:
            argv.append("-A")
        if filter_:
            argv += ["--filter", filter_]
        cp = self._run(argv, capture=True)
        out = (cp.stdout or "").strip()
        if not out:
            return []
        try:
            return json.loads(out)
        except json.JSONDecodeError as e:
            raise HelmError(f"Unparseable output from helm list: {e}") from e

    # ------------------------- chart operations -------------------------

    def install(
        self,
        release: str,
        chart: Path | str,
        namespace: str,
        *,
        values_files: Sequence[Path | str] = (),
        sets: Sequence[str] = (),
        create_namespace: bool = True,
        version: str | None = None,
        wait: bool = False,
        timeout: str | None = None,
        debug: bool = False,
    ) -> None:
        argv = self._base() + ["install", release, str(chart), "-n", namespace]
        argv += self._value_args(values_files, sets)
        if create_namespace:
            argv.append("--create-namespace")
        if version:
            argv += ["--version", version]
        if wait:
            argv.append("--wait")
        if timeout:
            argv += ["--timeout", timeout]
        if debug:
            argv.append("--debug")
        self._run(argv, capture=False, stream=debug)

    def upgrade(
        self,
        release: str,
        chart: Path | str,
        namespace: str,
        *,
        values_files: Sequence[Path | str] = (),
        sets: Sequence[str] = (),
        install: bool = False,
        create_namespace: bool = False,
        version: str | None = None,
        wait: bool = False,
        timeout: str | None = None,
        debug: bool = False,
    ) -> None:
        argv = self._base() + ["upgrade"]
        if install:
            argv.append("--install")
        argv += [release, str(chart), "-n", namespace]
        argv += self._value_args(values_files, sets)
        if create_namespace:
            argv.append("--create-namespace")
        if version:
            argv += ["--version", version]
        if wait:
            argv.append("--wait")
        if timeout:
            argv += ["--timeout", timeout]
        if debug:
            argv.append("--debug")
        self._run(argv, capture=False, stream=debug)

    def template(
        self,
        release: str,
        chart: Path | str,
        namespace: str,
        *,
        values_files: Sequence[Path | str] = (),
        sets: Sequence[str] = (),
        version: str | None = None,
    ) -> str:
        argv = self._base() + ["template", release, str(chart), "-n", namespace]
        argv += self._value_args(values_files, sets)
        if version:
            argv += ["--version", version]
        cp = self._run(argv, capture=True)
        return cp.stdout or ""

    def uninstall(
        self,
        release: str,
        namespace: str,
        *,
        wait: bool = True,
        timeout: str | None = "5m",
        debug: bool = False,
    ) -> None:
        argv = self._base() + ["uninstall", release, "-n", namespace]
        if wait:
            argv.append("--wait")
        if timeout:
            argv += ["--timeout", timeout]
        if debug:
            argv.append("--debug")
        self._run(argv, capture=not debug, stream=debug)

    # ------------------------- repositories -------------------------

    def add_repo(self, name: str, url: str, debug: bool = False) -> None:
        argv = self._base() + ["repo", "add", name, url, "--force-update"]
        if debug:
            argv.append("--debug")
        self._run(argv, capture=not debug, stream=debug)

    def update_repos(self, debug: bool = False) -> None:
        argv = self._base() + ["repo", "update"]
        if debug:
            argv.append("--debug")
        self._run(argv, capture=not debug, stream=debug)
