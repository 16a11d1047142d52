# oral_exam/services/fluency_scoring.py
"""
Fluency scoring: speed + control of long pauses.

False starts and repetitions are not penalised; only silence costs points.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Dict, Sequence

import numpy as np


# =========================
# Configuration
# =========================
LONG_PAUSE_THRESHOLD = 1.2  # seconds
COUNTED_PAUSE_THRESHOLD = 0.3  # gaps shorter than this are articulation, not pauses
MAX_PAUSE_PENALTY_THRESHOLD = 2.5
PAUSE_RATIO_PENALTY_THRESHOLD = 0.35

FILLER_WORDS = frozenset({"um", "uh", "euh", "hm", "hmm"})

# (min_wpm, max_wpm, band ceiling); the floor of each band is the previous ceiling
SPEED_BANDS = (
    (0, 45, 10),
    (45, 65, 25),
    (65, 85, 40),
    (85, 110, 55),
    (110, 140, 60),
)
SPEED_MAX = 60
PAUSE_MAX = 40

_STRIP_CHARS = ".,;:!?…\"'«»()[]-–"


@dataclass
class WordTiming:
    word: str
    start: float  # seconds
    end: float


@dataclass
class FluencyMetrics:
    word_count: int  # excludes fillers
    speaking_time: float  # first to last non-filler word
    articulation_wpm: float
    long_pause_count: int
    max_pause: float
    pause_ratio: float  # total silence / total duration
    total_pause_duration: float  # sum of gaps > 0.3s
    filler_ratio: float  # tracked only, never scored

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class FluencyScore:
    total: int  # 0-100
    speed_subscore: int  # 0-60
    pause_subscore: int  # 0-40
    metrics: FluencyMetrics

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "speed_subscore": self.speed_subscore,
            "pause_subscore": self.pause_subscore,
            "metrics": self.metrics.to_dict(),
        }


# =========================
# Scoring
# =========================
def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def calculate_speed_subscore(articulation_wpm: float) -> int:
    if articulation_wpm <= 0:
        return 0
    if articulation_wpm >= SPEED_BANDS[-1][1]:
        return SPEED_MAX

    prev_score = 0
    for band_min, band_max, band_score in SPEED_BANDS:
        if band_min <= articulation_wpm < band_max:
            position = (articulation_wpm - band_min) / (band_max - band_min)
            return _round_half_up(prev_score + position * (band_score - prev_score))
        prev_score = band_score

    return SPEED_MAX


def calculate_pause_subscore(long_pause_count: int, max_pause: float, pause_ratio: float) -> int:
    score = PAUSE_MAX
    score -= min(long_pause_count * 5, 20)
    if max_pause > MAX_PAUSE_PENALTY_THRESHOLD:
        score -= 10
    if pause_ratio > PAUSE_RATIO_PENALTY_THRESHOLD:
        score -= 10
    return max(0, score)


def calculate_fluency_score(metrics: FluencyMetrics) -> FluencyScore:
    speed = calculate_speed_subscore(metrics.articulation_wpm)
    pause = calculate_pause_subscore(metrics.long_pause_count, metrics.max_pause, metrics.pause_ratio)
    return FluencyScore(
        total=speed + pause,
        speed_subscore=speed,
        pause_subscore=pause,
        metrics=metrics,
    )


# =========================
# Metrics from word timestamps
# =========================
def normalize_word(word: str) -> str:
    return word.strip().strip(_STRIP_CHARS).lower()


def is_filler(word: str) -> bool:
    return normalize_word(word) in FILLER_WORDS


def compute_fluency_metrics(words: Sequence[WordTiming], total_duration: float) -> FluencyMetrics:
    """
    Build fluency metrics from word-level ASR timestamps.

    Args:
        words: recognised words with start/end offsets in seconds
        total_duration: length of the whole recording in seconds

    Returns:
        FluencyMetrics ready for calculate_fluency_score
    """
    timed = sorted((w for w in words if normalize_word(w.word)), key=lambda w: w.start)
    content = [w for w in timed if not is_filler(w.word)]

    if not content:
        return FluencyMetrics(
            word_count=0,
            speaking_time=0.0,
            articulation_wpm=0.0,
            long_pause_count=0,
            max_pause=0.0,
            pause_ratio=1.0 if total_duration > 0 else 0.0,
            total_pause_duration=0.0,
            filler_ratio=1.0 if timed else 0.0,
        )

    word_count = len(content)
    speaking_time = max(0.0, content[-1].end - content[0].start)
    articulation_wpm = word_count / (speaking_time / 60) if speaking_time > 0 else 0.0

    starts = np.array([w.start for w in timed], dtype=float)
    ends = np.array([w.end for w in timed], dtype=float)
    gaps = np.clip(starts[1:] - ends[:-1], 0.0, None) if len(timed) > 1 else np.array([])

    long_pause_count = int((gaps > LONG_PAUSE_THRESHOLD).sum())
    max_pause = float(gaps.max()) if gaps.size else 0.0
    total_pause_duration = float(gaps[gaps > COUNTED_PAUSE_THRESHOLD].sum()) if gaps.size else 0.0

    if total_duration > 0:
        spoken = float(np.clip(ends - starts, 0.0, None).sum())
        silence = max(0.0, total_duration - spoken)
        pause_ratio = min(1.0, silence / total_duration)
    else:
        pause_ratio = 0.0

    return FluencyMetrics(
        word_count=word_count,
        speaking_time=round(speaking_time, 3),
        articulation_wpm=round(articulation_wpm, 2),
        long_pause_count=long_pause_count,
        max_pause=round(max_pause, 3),
        pause_ratio=round(pause_ratio, 4),
        total_pause_duration=round(total_pause_duration, 3),
        filler_ratio=round((len(timed) - word_count) / len(timed), 4),
    )
