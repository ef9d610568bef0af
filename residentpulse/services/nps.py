"""NPS arithmetic. Pure functions, shared by every report that shows a score."""
import math
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

PROMOTER_MIN = 9
PASSIVE_MIN = 7


@dataclass(frozen=True)
class NpsBreakdown:
    nps: Optional[int]
    promoters: int
    passives: int
    detractors: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


def _valid(scores: Iterable[Optional[int]]) -> List[int]:
    return [s for s in scores if s is not None]


def compute_nps(scores: Iterable[Optional[int]]) -> NpsBreakdown:
    valid = _valid(scores)
    promoters = sum(1 for s in valid if s >= PROMOTER_MIN)
    detractors = sum(1 for s in valid if s < PASSIVE_MIN)
    passives = len(valid) - promoters - detractors
    total = len(valid)
    nps = None
    if total:
        # halves round up, e.g. 12.5 -> 13 and -12.5 -> -12
        nps = int(math.floor((promoters - detractors) / total * 100 + 0.5))
    return NpsBreakdown(nps, promoters, passives, detractors, total)


def classify_score(score: int) -> str:
    if score >= PROMOTER_MIN:
        return "promoter"
    if score >= PASSIVE_MIN:
        return "passive"
    return "detractor"


def lower_median(scores: Iterable[Optional[int]]) -> Optional[int]:
    """Middle score, taking the lower of the two middle scores when the count is even.

    With an even count ordered[n // 2] would pick the upper middle; a 5/6 split on the
    passive line stays passive (5) rather than tipping the cohort upward.
    """
    ordered = sorted(_valid(scores))
    if not ordered:
        return None
    return ordered[(len(ordered) - 1) // 2]


def classify_community_cohort(scores: Iterable[Optional[int]]) -> Optional[str]:
    """Cohort from the lower median of the community's scores."""
    median = lower_median(scores)
    if median is None:
        return None
    return classify_score(median)


def score_distribution(scores: Iterable[Optional[int]]) -> List[int]:
    counts = [0] * 11
    for s in _valid(scores):
        counts[s] += 1
    return counts
