from dataclasses import dataclass
from typing import List

from flask import current_app

from arena.errors import ExternalLookupFailure


@dataclass(frozen=True)
class LeaderboardEntry:
    id: int
    display_name: str
    wins: int

    def to_dict(self):
        return {
            'id': self.id,
            'displayName': self.display_name,
            'wins': self.wins,
        }


def compute_leaderboard(store, directory) -> List[LeaderboardEntry]:
    """Rank every player with recorded wins, most wins first.

    Players whose name lookup fails are left out rather than failing the
    whole board.
    """
    entries = []
    for player_id in sorted(store.list_winner_ids()):
        wins = store.get_wins(player_id)
        try:
            user = directory.lookup_users([player_id]).get(player_id)
        except ExternalLookupFailure as exc:
            current_app.logger.warning(f"[directory-fail] leaderboard lookup for {player_id}: {exc}")
            continue
        if not user or not user.username:
            continue
        entries.append(LeaderboardEntry(id=player_id, display_name=user.username, wins=wins))
    entries.sort(key=lambda e: e.wins, reverse=True)
    return entries
