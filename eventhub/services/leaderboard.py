"""
Leaderboard ranking

Standard competition ranking ("1224"): equal scores share a rank and ties
consume rank slots, i.e. rank = 1 + number of entries with a strictly
greater score. Entries without a score are listed after every scored entry
and carry rank None.

Pure functions only; the judging service feeds them database rows.
"""
from typing import Any, Dict, Iterable, List, Optional


def _tie_value(entry: Dict[str, Any], tie_key: str):
    value = entry.get(tie_key)
    return (value is None, value if value is not None else 0)


def rank_entries(
    entries: Iterable[Dict[str, Any]],
    score_key: str = "score",
    tie_key: str = "id"
) -> List[Dict[str, Any]]:
    """
    Rank entries by score, highest first.

    Returns new dicts carrying every original field plus ``rank``. Entries
    with equal scores are ordered by ``tie_key`` ascending so the output is
    deterministic.
    """
    entries = list(entries)
    scored = [e for e in entries if e.get(score_key) is not None]
    unscored = [e for e in entries if e.get(score_key) is None]

    # Stable sorts: tie order first, then score (reverse keeps stability)
    scored.sort(key=lambda e: _tie_value(e, tie_key))
    scored.sort(key=lambda e: e[score_key], reverse=True)
    unscored.sort(key=lambda e: _tie_value(e, tie_key))

    ranked: List[Dict[str, Any]] = []
    previous_score = None
    current_rank: Optional[int] = None
    for position, entry in enumerate(scored, start=1):
        if current_rank is None or entry[score_key] != previous_score:
            current_rank = position
            previous_score = entry[score_key]
        ranked.append({**entry, "rank": current_rank})

    ranked.extend({**entry, "rank": None} for entry in unscored)
    return ranked
