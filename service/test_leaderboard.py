"""Tests for the mock leaderboard."""

import unittest

from leaderboard import MOCK_PLAYERS, Leaderboard
from storage import STORAGE_KEYS, GameRecords, MemoryStore, StorageService
from user_profile import ProfileService


class LeaderboardTests(unittest.TestCase):
    def setUp(self) -> None:
        storage = StorageService(MemoryStore())
        self.records = GameRecords(storage)
        self.profiles = ProfileService(storage)
        self.board = Leaderboard(self.records, self.profiles)

    def test_score_board_without_profile_is_mock_data(self) -> None:
        entries = self.board.get_leaderboard("score")
        self.assertEqual(len(entries), len(MOCK_PLAYERS))
        self.assertEqual(entries[0]["username"], "GameMaster")
        self.assertEqual(entries[0]["rank"], 1)
        self.assertEqual(entries[0]["display"], "24,580")
        self.assertEqual([e["rank"] for e in entries], list(range(1, len(entries) + 1)))

    def test_tile_board_breaks_ties_by_score(self) -> None:
        entries = self.board.get_leaderboard("tile", limit=3)
        self.assertEqual([e["username"] for e in entries], ["GameMaster", "ProSwiper", "TileMerger"])

    def test_moves_board_ranks_fewest_moves_first(self) -> None:
        entries = self.board.get_leaderboard("moves", limit=1)
        self.assertEqual(entries[0]["username"], "TileRookie")

    def test_win_rate_formatting(self) -> None:
        entries = self.board.get_leaderboard("winRate", limit=1)
        self.assertEqual(entries[0]["display"], "37.5%")

    def test_limit_is_capped(self) -> None:
        self.assertEqual(len(self.board.get_leaderboard("wins", limit=5)), 5)
        self.assertEqual(len(self.board.get_leaderboard("wins", limit=500)), len(MOCK_PLAYERS))

    def test_unknown_category_raises(self) -> None:
        with self.assertRaises(ValueError):
            self.board.get_leaderboard("speed")

    def test_current_user_is_merged_and_ranked(self) -> None:
        self.profiles.save_profile("Local Hero")
        self.records.record_game(True, 400, 4096, 30000)

        entries = self.board.get_leaderboard("score")
        self.assertEqual(len(entries), len(MOCK_PLAYERS) + 1)
        self.assertEqual(entries[0]["username"], "Local Hero")
        self.assertTrue(entries[0]["isCurrentUser"])
        self.assertEqual(
            self.board.get_current_user_rank("score"),
            {"rank": 1, "total": len(MOCK_PLAYERS) + 1},
        )

    def test_new_player_is_left_out_of_filtered_boards(self) -> None:
        self.profiles.save_profile("Newcomer")
        self.assertIsNone(self.board.get_current_user_rank("winRate"))
        self.assertIsNone(self.board.get_current_user_rank("moves"))
        self.assertEqual(self.board.get_current_user_rank("score")["rank"], len(MOCK_PLAYERS) + 1)

    def test_current_user_replaces_mock_entry_with_same_id(self) -> None:
        self._save_profile_as("player_001", "Renamed")
        names = [e["username"] for e in self.board.get_leaderboard("score", limit=100)]
        self.assertNotIn("GameMaster", names)
        self.assertIn("Renamed", names)

    def _save_profile_as(self, user_id: str, username: str) -> None:
        self.profiles.storage.set(STORAGE_KEYS["USER_ID"], user_id)
        self.profiles.save_profile(username)

    def test_no_rank_without_profile(self) -> None:
        self.assertIsNone(self.board.get_current_user_rank())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
