from typing import Iterable, List, Optional

from models import SurveyFilters, SurveyStats
from nps import net_promoter_score
from utils import round_half_up

SCORE_FIELDS = {
    "avg_satisfaction": "survey_satisfaction_score",
    "avg_usefulness": "survey_usefulness_score",
    "avg_instructor": "survey_instructor_score",
    "avg_recommendation": "recommendation_score",
    "avg_overall": "survey_overall_score",
}


def overall_score(satisfaction: int, usefulness: int, instructor: int, recommendation: int) -> int:
    """Overall survey score: the mean of the four sub-scores, rounded half-up."""
    return round_half_up((satisfaction + usefulness + instructor + recommendation) / 4)


def matches(row: dict, filters: SurveyFilters) -> bool:
    """True when the survey row satisfies every filter that is set."""
    if filters.event_type and row.get("event_type") != filters.event_type:
        return False
    if filters.template_id and row.get("template_id") != filters.template_id:
        return False
    start = row.get("event_datetime_start")
    if filters.year and (start is None or start.year != filters.year):
        return False
    if filters.month and (start is None or start.month != filters.month):
        return False
    return True


def average(values: Iterable) -> Optional[float]:
    values = [v for v in values if v is not None]
    if not values:
        return None
    return round_half_up(sum(values) / len(values), 2)


def summarize(rows: List[dict], filters: Optional[SurveyFilters] = None) -> SurveyStats:
    """Average every score over the rows matching `filters` (all rows when None)."""
    filters = filters or SurveyFilters()
    selected = [r for r in rows if matches(r, filters)]

    averages = {name: average(r.get(column) for r in selected) for name, column in SCORE_FIELDS.items()}

    bucket_counts = {}
    for r in selected:
        bucket = r.get("nps_bucket_name")
        if bucket:
            bucket_counts[bucket] = bucket_counts.get(bucket, 0) + 1
    nps = net_promoter_score(bucket_counts, sum(bucket_counts.values()))

    return SurveyStats(
        response_count=len(selected),
        bucket_counts=bucket_counts,
        net_promoter_score=round_half_up(nps, 2) if nps is not None else None,
        **averages,
    )
