"""Game domain services: attack resolution, sessions, leaderboard, timers.

This package contains the game rules that HTTP routes and socket handlers
call into, keeping transport concerns separated from core game mechanics.
"""

from dataclasses import dataclass

from flask import current_app


@dataclass
class GameServices:
    store: object
    directory: object
    engine: object
    broadcaster: object
    scheduler: object
    sessions: object


def current_services() -> GameServices:
    return current_app.extensions['arena']
