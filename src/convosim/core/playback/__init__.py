"""Playback: drive a run turn by turn through a backend."""

from convosim.core.playback.backend import BackendContext, BackendStep, ScriptedBackend, TurnBackend
from convosim.core.playback.session import PlaybackSession, default_fork_label

__all__ = [
    "BackendContext",
    "BackendStep",
    "PlaybackSession",
    "ScriptedBackend",
    "TurnBackend",
    "default_fork_label",
]
