"""Mock leaderboard: canned players merged with the local player's records.

Each category is a ``LeaderboardStrategy`` describing how players are
filtered, ordered and formatted, so a real backend can replace
``MOCK_PLAYERS`` without touching the ranking code.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from storage import GameRecords
from user_profile import ProfileService

logger = logging.getLogger(__name__)

MIN_GAMES_FOR_WINRATE = 10
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

Player = Dict[str, Any]

MOCK_PLAYERS: List[Player] = [
    {"userId": "player_001", "username": "GameMaster", "bestScore": 24580, "bestTile": 2048, "gamesWon": 45, "gamesPlayed": 120, "winRate": 37.5, "totalMoves": 3456},
    {"userId": "player_002", "username": "TileMerger", "bestScore": 18920, "bestTile": 1024, "gamesWon": 32, "gamesPlayed": 95, "winRate": 33.7, "totalMoves": 2890},
    {"userId": "player_003", "username": "ProSwiper", "bestScore": 16340, "bestTile": 2048, "gamesWon": 28, "gamesPlayed": 88, "winRate": 31.8, "totalMoves": 2567},
    {"userId": "player_004", "username": "2048Legend", "bestScore": 15670, "bestTile": 1024, "gamesWon": 25, "gamesPlayed": 82, "winRate": 30.5, "totalMoves": 2345},
    {"userId": "player_005", "username": "GridKing", "bestScore": 14220, "bestTile": 512, "gamesWon": 22, "gamesPlayed": 75, "winRate": 29.3, "totalMoves": 2123},
    {"userId": "player_006", "username": "NumberNinja", "bestScore": 13580, "bestTile": 1024, "gamesWon": 20, "gamesPlayed": 70, "winRate": 28.6, "totalMoves": 1987},
    {"userId": "player_007", "username": "SwipeQueen", "bestScore": 12940, "bestTile": 512, "gamesWon": 18, "gamesPlayed": 65, "winRate": 27.7, "totalMoves": 1845},
    {"userId": "player_008", "username": "TileTitan", "bestScore": 11760, "bestTile": 512, "gamesWon": 16, "gamesPlayed": 60, "winRate": 26.7, "totalMoves": 1723},
    {"userId": "player_009", "username": "MergeMaster", "bestScore": 10580, "bestTile": 256, "gamesWon": 14, "gamesPlayed": 55, "winRate": 25.5, "totalMoves": 1589},
    {"userId": "player_010", "username": "GridGuru", "bestScore": 9820, "bestTile": 512, "gamesWon": 12, "gamesPlayed": 50, "winRate": 24.0, "totalMoves": 1456},
    {"userId": "player_011", "username": "PuzzlePro", "bestScore": 8940, "bestTile": 256, "gamesWon": 10, "gamesPlayed": 45, "winRate": 22.2, "totalMoves": 1345},
    {"userId": "player_012", "username": "SlideAce", "bestScore": 7860, "bestTile": 256, "gamesWon": 8, "gamesPlayed": 40, "winRate": 20.0, "totalMoves": 1234},
    {"userId": "player_013", "username": "BlockBuster", "bestScore": 6780, "bestTile": 128, "gamesWon": 6, "gamesPlayed": 35, "winRate": 17.1, "totalMoves": 1123},
    {"userId": "player_014", "username": "Combo2048", "bestScore": 5920, "bestTile": 256, "gamesWon": 5, "gamesPlayed": 30, "winRate": 16.7, "totalMoves": 987},
    {"userId": "player_015", "username": "TileRookie", "bestScore": 4560, "bestTile": 128, "gamesWon": 3, "gamesPlayed": 25, "winRate": 12.0, "totalMoves": 856},
]


@dataclass(frozen=True)
class LeaderboardStrategy:
    sort_key: Callable[[Player], Tuple]
    include: Callable[[Player], bool]
    field: str
    label: str
    formatter: Callable[[Any], str]


STRATEGIES: Dict[str, LeaderboardStrategy] = {
    "score": LeaderboardStrategy(
        sort_key=lambda p: (-p["bestScore"],),
        include=lambda p: True,
        field="bestScore",
        label="Best Score",
        formatter=lambda v: f"{v:,}",
    ),
    # Best tile first, best score breaks ties.
    "tile": LeaderboardStrategy(
        sort_key=lambda p: (-p["bestTile"], -p["bestScore"]),
        include=lambda p: True,
        field="bestTile",
        label="Best Tile",
        formatter=str,
    ),
    "winRate": LeaderboardStrategy(
        sort_key=lambda p: (-p["winRate"],),
        include=lambda p: p["gamesPlayed"] >= MIN_GAMES_FOR_WINRATE,
        field="winRate",
        label="Win Rate",
        formatter=lambda v: f"{v:.1f}%",
    ),
    "wins": LeaderboardStrategy(
        sort_key=lambda p: (-p["gamesWon"],),
        include=lambda p: True,
        field="gamesWon",
        label="Total Wins",
        formatter=lambda v: f"{v:,}",
    ),
    # Fewest moves ranks first.
    "moves": LeaderboardStrategy(
        sort_key=lambda p: (p["totalMoves"], -p["bestScore"]),
        include=lambda p: p["gamesPlayed"] > 0,
        field="totalMoves",
        label="Total Moves",
        formatter=lambda v: f"{v:,}",
    ),
}


def get_strategy(category: str) -> LeaderboardStrategy:
    try:
        return STRATEGIES[category]
    except KeyError:
        raise ValueError(f"Unknown leaderboard category: {category}") from None


class Leaderboard:
    def __init__(
        self,
        records: GameRecords,
        profiles: ProfileService,
        players: Optional[List[Player]] = None,
    ) -> None:
        self.records = records
        self.profiles = profiles
        self.players = players if players is not None else MOCK_PLAYERS

    def current_user_entry(self) -> Optional[Player]:
        profile = self.profiles.get_profile()
        if profile is None:
            return None

        stats = self.records.get_stats()
        return {
            "userId": profile.user_id,
            "username": profile.username,
            "bestScore": self.records.get_best_score(),
            "bestTile": stats.best_tile,
            "gamesWon": stats.games_won,
            "gamesPlayed": stats.games_played,
            "totalMoves": stats.total_moves,
            "winRate": stats.win_rate_percentage,
            "isCurrentUser": True,
        }

    def _all_players(self) -> List[Player]:
        current = self.current_user_entry()
        if current is None:
            return list(self.players)
        others = [p for p in self.players if p["userId"] != current["userId"]]
        return others + [current]

    def get_leaderboard(self, category: str, limit: int = DEFAULT_LIMIT) -> List[Player]:
        strategy = get_strategy(category)
        limit = max(0, min(int(limit), MAX_LIMIT))

        ranked = sorted(
            (p for p in self._all_players() if strategy.include(p)),
            key=strategy.sort_key,
        )
        entries = []
        for index, player in enumerate(ranked[:limit]):
            entry = dict(player)
            entry["rank"] = index + 1
            entry["display"] = strategy.formatter(player[strategy.field])
            entries.append(entry)
        return entries

    def get_current_user_rank(self, category: str = "score") -> Optional[Dict[str, int]]:
        current = self.current_user_entry()
        if current is None:
            return None

        board = self.get_leaderboard(category, MAX_LIMIT)
        for entry in board:
            if entry["userId"] == current["userId"]:
                return {"rank": entry["rank"], "total": len(board)}

        logger.debug("Current user not ranked in %s", category)
        return None
