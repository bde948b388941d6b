"""
Song catalog and lobby vote tally.

The catalog is a fixed, ordered list of track file names known to both the
server and the browser client. Catalog order doubles as the vote tie-break.
"""

from typing import Dict, Iterable, List, Optional, Sequence

# Tie-break order; first entry is the fallback when nobody voted
DEFAULT_CATALOG: List[str] = [
    "Homecoming.mp3",
    "Children.mp3",
    "killing_me_softly.mp3",
    "like_a_prayer.mp3",
    "move_your_body.mp3",
]


def is_known_song(song: object, catalog: Sequence[str] = DEFAULT_CATALOG) -> bool:
    return isinstance(song, str) and song in catalog


# ============================================================================
# Tally
# ============================================================================


def tally_votes(
    votes: Iterable[Optional[str]], catalog: Sequence[str] = DEFAULT_CATALOG
) -> Dict[str, int]:
    """Count votes per song.

    Every catalog song appears in the result (zero if unvoted), in catalog
    order. Votes for songs outside the catalog and empty votes are ignored.
    """
    counts = {song: 0 for song in catalog}
    for vote in votes:
        if vote in counts:
            counts[vote] += 1
    return counts


def resolve_winner(
    votes: Iterable[Optional[str]], catalog: Sequence[str] = DEFAULT_CATALOG
) -> str:
    """Pick the song with the strictly highest vote count.

    Ties go to the earliest song in catalog order; with no votes at all the
    first catalog entry wins.
    """
    if not catalog:
        raise ValueError("catalog must not be empty")

    counts = tally_votes(votes, catalog)
    winner = catalog[0]
    best = 0
    for song in catalog:
        if counts[song] > best:
            winner = song
            best = counts[song]
    return winner
