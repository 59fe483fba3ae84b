"""Ephemeral anonymous chat rooms over WebSockets."""

__version__ = "1.0.0"
