from __future__ import annotations


class SessionError(Exception):
    """Base type for errors raised by the training session itself."""


class InvalidConfigurationError(SessionError, ValueError):
    """A session was constructed with inconsistent or missing parameters."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(f"{parameter}: {message}")
        self.parameter = parameter


class MissingStreamError(SessionError, KeyError):
    """A minibatch source result lacks a stream bound to a model input."""

    def __init__(self, input_name: str, stream_name: str) -> None:
        super().__init__(f"Input '{input_name}' is bound to stream '{stream_name}', which the source did not return")
        self.input_name = input_name
        self.stream_name = stream_name

    def __str__(self) -> str:
        # KeyError repr-quotes its argument.
        return str(self.args[0])


class CheckpointError(SessionError, RuntimeError):
    """A checkpoint was readable but its session state is malformed."""
