# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/keys/fetch.py

from __future__ import annotations

import logging
import os
import re
import socket
import tempfile
from pathlib import Path
from typing import NoReturn, Optional, Sequence

import requests

from besu_stack.config.settings import VaultSettings
from besu_stack.errors import KeyFetchError
from besu_stack.utils.retry import RetryError, retry

log = logging.getLogger("besu_stack")

_ORDINAL = re.compile(r"-(\d+)$")


def parse_ordinal(hostname: str) -> int:
    """
    Ordinal of a StatefulSet pod from its hostname (``<name>-<n>``).
    Only the first DNS label is considered.
    """
    short = hostname.split(".", 1)[0]
    m = _ORDINAL.search(short)
    if not m:
        raise KeyFetchError(f"Cannot parse ordinal from hostname '{hostname}'")
    return int(m.group(1))


def render_path(template: str, ordinal: int) -> str:
    if "{ordinal}" not in template:
        raise KeyFetchError(f"Path template '{template}' has no {{ordinal}} placeholder")
    return template.replace("{ordinal}", str(ordinal))


class VaultClient:
    """
    Reads one secret field from Vault using the pod's service-account token
    and the Kubernetes auth method.
    """

    def __init__(self, settings: VaultSettings, *, session: requests.Session | None = None):
        self.settings = settings
        self.session = session or requests.Session()
        self._token: Optional[str] = None

    def _url(self, path: str) -> str:
        return f"{self.settings.addr.rstrip('/')}/v1/{path.lstrip('/')}"

    @retry(retries=3, delay=2, retry_on=(requests.ConnectionError, requests.Timeout))
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        return self.session.request(method, url, verify=self.settings.verify_tls, timeout=30, **kwargs)

    def _call(self, what: str, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._send(method, url, **kwargs)
        except (RetryError, requests.RequestException) as e:
            cause = e.__cause__ or e
            raise KeyFetchError(f"{what} failed: {cause}") from e

    def login(self) -> str:
        try:
            jwt = self.settings.token_path.read_text().strip()
        except OSError as e:
            raise KeyFetchError(f"Cannot read service account token {self.settings.token_path}: {e}") from e

        url = self._url(f"auth/{self.settings.auth_path}/login")
        r = self._call("Vault login", "POST", url, json={"role": self.settings.role, "jwt": jwt})
        if r.status_code != 200:
            raise KeyFetchError(f"Vault login failed: {r.status_code} {r.text}")

        token = (r.json().get("auth") or {}).get("client_token")
        if not token:
            raise KeyFetchError("Vault login response carried no client token")
        self._token = token
        return token

    def read_field(self, path: str, field: str) -> str:
        if not self._token:
            self.login()

        r = self._call(
            f"Vault read of '{path}'", "GET", self._url(path), headers={"X-Vault-Token": self._token}
        )
        if r.status_code != 200:
            raise KeyFetchError(f"Vault read of '{path}' failed: {r.status_code} {r.text}")

        data = r.json().get("data") or {}
        # KV v2 nests the secret under data.data
        inner = data.get("data")
        if isinstance(inner, dict) and field in inner:
            value = inner[field]
        elif field in data:
            value = data[field]
        else:
            raise KeyFetchError(f"Field '{field}' not present in Vault secret '{path}'")

        if not isinstance(value, str) or not value.strip():
            raise KeyFetchError(f"Field '{field}' in Vault secret '{path}' is empty")
        return value.strip()


def write_key_atomic(path: Path, value: str) -> Path:
    """Write *value* to *path* with mode 0600; the file is either complete or absent."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(prefix=".nodekey-", dir=str(path.parent))
    try:
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(value)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    return path


def fetch_key(
    *,
    path_template: str,
    output: Path,
    settings: VaultSettings,
    field: str = "nodekey",
    hostname: str | None = None,
    client: VaultClient | None = None,
) -> Path:
    host = hostname or os.getenv("HOSTNAME") or socket.gethostname()
    ordinal = parse_ordinal(host)
    secret_path = render_path(path_template, ordinal)
    log.info("Fetching node key for ordinal %d from %s", ordinal, secret_path)

    client = client or VaultClient(settings)
    value = client.read_field(secret_path, field)
    return write_key_atomic(output, value)


def exec_node(command: Sequence[str]) -> NoReturn:
    if not command:
        raise KeyFetchError("No node command given to exec after fetching the key")
    log.info("Starting node: %s", " ".join(command))
    os.execvp(command[0], list(command))
