"""Game domain services: lifecycle, clocks, lobby, seats and draw offers.

This package contains the game coordination logic imported by the HTTP
routes and socket handlers, keeping transport concerns separated from the
state machine and its bookkeeping.
"""

from .runtime import GameRuntime

__all__ = ['GameRuntime']
