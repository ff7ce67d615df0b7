"""Route group exports."""

from . import actors, dispatch, health, requests

__all__ = ["actors", "dispatch", "health", "requests"]
