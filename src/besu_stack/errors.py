# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/errors.py


class BesuStackError(RuntimeError):
    """Base class for besu-stack failures that end a run with exit code 1."""


class ConfigurationError(BesuStackError):
    """Invalid values, missing referenced files, out-of-range key references."""


class PreconditionError(BesuStackError):
    """A required tool or cluster capability is missing."""


class ReleaseExistsError(PreconditionError):
    """Install requested for a release that is already deployed."""


class StuckResourceError(BesuStackError):
    """A namespace survived forced finalizer removal."""


class LifecycleError(BesuStackError):
    """Illegal release phase transition."""


class KeyFetchError(BesuStackError):
    """Remote key material could not be fetched or written."""
