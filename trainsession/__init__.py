"""Resumable, distributed training-session orchestration.

The orchestrator drives a trainer over a minibatch source, deciding when to
checkpoint, cross-validate and stop. See ``trainsession.session``.
"""

__version__ = "0.1.0"
