"""Tests for the song catalog and vote tally."""

import pytest

from race_server.songs import (
    DEFAULT_CATALOG,
    is_known_song,
    resolve_winner,
    tally_votes,
)

CATALOG = ["SongB", "SongA", "SongC"]


class TestTally:
    def test_counts_every_catalog_song(self):
        counts = tally_votes(["SongA", "SongA", None, "SongC"], CATALOG)
        assert counts == {"SongB": 0, "SongA": 2, "SongC": 1}
        assert list(counts) == CATALOG

    def test_unknown_votes_ignored(self):
        assert tally_votes(["Nope", "SongB"], CATALOG) == {"SongB": 1, "SongA": 0, "SongC": 0}


class TestResolveWinner:
    def test_tie_broken_by_catalog_order(self):
        votes = ["SongA", "SongA", "SongB", "SongB", "SongC"]
        assert resolve_winner(votes, CATALOG) == "SongB"

    def test_strict_majority_wins(self):
        assert resolve_winner(["SongC", "SongC", "SongA"], CATALOG) == "SongC"

    def test_no_votes_falls_back_to_first(self):
        assert resolve_winner([], CATALOG) == "SongB"
        assert resolve_winner([None, None], CATALOG) == "SongB"

    def test_empty_catalog_rejected(self):
        with pytest.raises(ValueError):
            resolve_winner(["SongA"], [])

    def test_vote_order_does_not_matter(self):
        votes = ["SongC", "SongA", "SongA", "SongC"]
        assert resolve_winner(votes, CATALOG) == resolve_winner(list(reversed(votes)), CATALOG) == "SongA"


class TestCatalog:
    def test_default_catalog_order(self):
        assert DEFAULT_CATALOG == [
            "Homecoming.mp3",
            "Children.mp3",
            "killing_me_softly.mp3",
            "like_a_prayer.mp3",
            "move_your_body.mp3",
        ]

    def test_known_song(self):
        assert is_known_song("Children.mp3")
        assert not is_known_song("children.mp3")
        assert not is_known_song(None)
        assert not is_known_song(["Children.mp3"])
