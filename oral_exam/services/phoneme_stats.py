# oral_exam/services/phoneme_stats.py
"""
Per-user phoneme accuracy tracking.

Each (user, phoneme) row keeps an exact online mean of every observed score
and a confidence that depends on the attempt count only.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session

from oral_exam.models.phoneme_stat import UserPhonemeStat

logger = logging.getLogger(__name__)

# French inventory (IPA): 16 vowels, 3 semivowels, 18 consonants, 2 affricates
FRENCH_PHONEMES = (
    "i", "e", "ɛ", "a", "ɑ", "ɔ", "o", "u", "y", "ø", "œ", "ə",
    "ɛ̃", "ɑ̃", "ɔ̃", "œ̃",
    "j", "w", "ɥ",
    "p", "b", "t", "d", "k", "g", "f", "v", "s", "z", "ʃ", "ʒ",
    "m", "n", "ɲ", "ŋ", "l", "ʁ",
    "dʒ", "tʃ",
)
PHONEME_TOTAL = len(FRENCH_PHONEMES)  # 39

# symbols some recognisers emit for the same French sound
PHONEME_ALIASES = {"r": "ʁ", "R": "ʁ", "ɡ": "g"}

DEFAULT_CONFIDENCE_THRESHOLD = 0.5


class PhonemeScore(NamedTuple):
    phoneme: str
    score: float  # 0-100


def calculate_confidence(attempts: int) -> float:
    """1 - exp(-attempts / 12); 0 at zero attempts, tends to 1."""
    return 1 - math.exp(-attempts / 12)


def calculate_online_mean(old_mean: float, old_attempts: int, new_score: float) -> float:
    return (old_mean * old_attempts + new_score) / (old_attempts + 1)


def normalize_phoneme(symbol: str) -> str:
    cleaned = (symbol or "").replace("/", "").strip()
    return PHONEME_ALIASES.get(cleaned, cleaned)


def extract_phoneme_scores(result: Mapping[str, Any]) -> List[PhonemeScore]:
    """
    Pull per-phoneme scores out of a pronunciation assessment payload.

    The unified ``all_phonemes`` list wins; the raw Azure-style
    ``phonemes`` list with ``accuracy_score`` is the fallback.
    """
    scores: List[PhonemeScore] = []

    unified = result.get("all_phonemes") or result.get("allPhonemes")
    if isinstance(unified, list):
        for p in unified:
            scores.append(PhonemeScore(normalize_phoneme(p.get("phoneme", "")), float(p.get("score") or 0)))
        return scores

    raw = result.get("phonemes")
    if isinstance(raw, list):
        for p in raw:
            accuracy = p.get("accuracy_score", p.get("accuracyScore"))
            scores.append(PhonemeScore(normalize_phoneme(p.get("phoneme", "")), float(accuracy or 0)))

    return scores


# ------------------------
# writes
# ------------------------
def record_phoneme_scores(db: Session, user_id: str, scores: Sequence[PhonemeScore]) -> List[UserPhonemeStat]:
    """Fold each observation into the user's running stats. Caller commits."""
    now = datetime.now(timezone.utc)
    touched: Dict[str, UserPhonemeStat] = {}

    for phoneme, score in scores:
        if phoneme not in FRENCH_PHONEMES:
            logger.info("[PHONEME] skipping symbol outside inventory user_id=%s phoneme=%r", user_id, phoneme)
            continue
        score = min(100.0, max(0.0, float(score)))

        stat = (
            db.query(UserPhonemeStat)
            .filter(UserPhonemeStat.user_id == user_id, UserPhonemeStat.phoneme == phoneme)
            .with_for_update()
            .first()
        )
        if stat is None:
            stat = UserPhonemeStat(user_id=user_id, phoneme=phoneme, attempts=0, mean_accuracy=0.0)
            db.add(stat)

        stat.mean_accuracy = calculate_online_mean(stat.mean_accuracy, stat.attempts, score)
        stat.attempts = stat.attempts + 1
        stat.confidence = calculate_confidence(stat.attempts)
        stat.last_tested_at = now
        db.flush()
        touched[phoneme] = stat

    logger.info("[PHONEME] updated user_id=%s phonemes=%s", user_id, len(touched))
    return list(touched.values())


# ------------------------
# views over one fetch
# ------------------------
def hardest(stats: Sequence[UserPhonemeStat], limit: int = 5,
            min_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    confident = [s for s in stats if s.confidence >= min_confidence]
    return sorted(confident, key=lambda s: (s.mean_accuracy, s.phoneme))[:limit]


def uncertain(stats: Sequence[UserPhonemeStat],
              max_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    unsure = [s for s in stats if s.confidence < max_confidence]
    return sorted(unsure, key=lambda s: (s.attempts, s.phoneme))


def strongest(stats: Sequence[UserPhonemeStat], limit: int = 5,
              min_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    confident = [s for s in stats if s.confidence >= min_confidence]
    return sorted(confident, key=lambda s: (-s.mean_accuracy, s.phoneme))[:limit]


def coverage(stats: Sequence[UserPhonemeStat]) -> Dict[str, int]:
    tested = len({s.phoneme for s in stats if s.phoneme in FRENCH_PHONEMES})
    return {
        "tested": tested,
        "total": PHONEME_TOTAL,
        "percentage": int(math.floor(tested / PHONEME_TOTAL * 100 + 0.5)),
    }


# ------------------------
# queries
# ------------------------
def get_user_phoneme_stats(db: Session, user_id: str) -> List[UserPhonemeStat]:
    return (
        db.query(UserPhonemeStat)
        .filter(UserPhonemeStat.user_id == user_id)
        .order_by(UserPhonemeStat.phoneme)
        .all()
    )


def get_hardest_phonemes(db: Session, user_id: str, limit: int = 5,
                         min_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    return hardest(get_user_phoneme_stats(db, user_id), limit, min_confidence)


def get_uncertain_phonemes(db: Session, user_id: str,
                           max_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    return uncertain(get_user_phoneme_stats(db, user_id), max_confidence)


def get_strongest_phonemes(db: Session, user_id: str, limit: int = 5,
                           min_confidence: float = DEFAULT_CONFIDENCE_THRESHOLD) -> List[UserPhonemeStat]:
    return strongest(get_user_phoneme_stats(db, user_id), limit, min_confidence)


def get_phoneme_coverage(db: Session, user_id: str) -> Dict[str, int]:
    return coverage(get_user_phoneme_stats(db, user_id))


def get_phoneme_stats_summary(db: Session, user_id: str,
                              stats: Optional[Sequence[UserPhonemeStat]] = None) -> Dict[str, Any]:
    """All four views computed from a single read of the user's rows."""
    rows = list(stats) if stats is not None else get_user_phoneme_stats(db, user_id)
    return {
        "hardest": hardest(rows, limit=3),
        "uncertain": uncertain(rows),
        "strongest": strongest(rows, limit=3),
        "coverage": coverage(rows),
    }
