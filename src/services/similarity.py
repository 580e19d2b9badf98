import logging
from difflib import SequenceMatcher

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0
WORD_BONUS_WEIGHT = 10.0


def _matched_chars(a: str, b: str) -> int:
    # Longest common block first, then recurse left and right of it.
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    return sum(block.size for block in matcher.get_matching_blocks())


def char_similarity(a: str, b: str) -> float:
    """Percentage of characters shared by ``a`` and ``b`` (0-100)."""
    total = len(a) + len(b)
    if total == 0:
        return 0.0

    # Block matching can break ties differently depending on argument order.
    matched = max(_matched_chars(a, b), _matched_chars(b, a))
    return matched * 2 * 100.0 / total


def word_overlap_bonus(a: str, b: str) -> float:
    words_a = set(a.split(" "))
    words_b = set(b.split(" "))
    common = words_a & words_b
    if not common:
        return 0.0
    return len(common) / max(len(words_a), len(words_b)) * WORD_BONUS_WEIGHT


def similarity_score(a: str, b: str) -> float:
    """Score two normalized strings on a 0-100 scale.

    Character similarity plus a bonus of up to 10 points for whole words both
    strings share, which helps titles whose words were reordered.
    """
    if not a or not b:
        return 0.0

    score = char_similarity(a, b) + word_overlap_bonus(a, b)
    return min(MAX_SCORE, score)
