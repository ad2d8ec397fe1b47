# errors.py
from __future__ import annotations


class VimgreetError(Exception):
    """Base class for every error raised by vimgreet."""


class TransportError(VimgreetError):
    """The greetd socket is unreachable or the connection broke."""


class ProtocolError(TransportError):
    """greetd answered with a frame we could not decode."""


class AuthStateError(VimgreetError):
    """An AuthSession operation was called in a state that does not allow it."""


class ExecutionError(VimgreetError):
    """A privileged system command failed."""


class CoordinatorError(VimgreetError):
    """The ExecutionCoordinator was used out of order."""


class ConfigError(VimgreetError):
    """The onboard configuration file is invalid."""
