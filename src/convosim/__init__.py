"""Conversation flow simulator: eligibility, branching playback and tree disclosure."""

__version__ = "0.1.0"
