from datetime import datetime

import pytest

from models import SurveyFilters
from reporting import overall_score, summarize
from utils import round_half_up


def row(sat, use, ins, rec, event_type="Workshop", template_id=1, start=datetime(2024, 11, 15, 10), bucket=None):
    return {
        "survey_satisfaction_score": sat,
        "survey_usefulness_score": use,
        "survey_instructor_score": ins,
        "recommendation_score": rec,
        "survey_overall_score": overall_score(sat, use, ins, rec),
        "event_type": event_type,
        "template_id": template_id,
        "event_datetime_start": start,
        "nps_bucket_name": bucket,
    }


ROWS = [
    row(5, 4, 4, 5, bucket="Detractor"),
    row(3, 3, 4, 10, event_type="Summit", template_id=2, start=datetime(2024, 12, 1), bucket="Promoter"),
    row(4, 5, 5, 9, template_id=3, start=datetime(2025, 11, 20), bucket="Promoter"),
    row(2, 2, 3, 7, event_type="Summit", template_id=2, start=datetime(2025, 1, 5), bucket="Passive"),
]


@pytest.mark.parametrize("scores,expected", [
    ((5, 4, 4, 5), 5),   # 4.5 rounds up
    ((1, 1, 1, 2), 1),   # 1.25
    ((1, 2, 2, 2), 2),   # 1.75
    ((2, 2, 3, 3), 3),   # 2.5 rounds up, not to even
    ((4, 4, 4, 4), 4),
])
def test_overall_score_rounds_half_up(scores, expected):
    assert overall_score(*scores) == expected


def test_round_half_up_places():
    assert round_half_up(2.675, 2) == 2.68
    assert round_half_up(0.5) == 1


def test_no_filter_matches_whole_table():
    stats = summarize(ROWS)
    assert stats.response_count == 4
    assert stats.avg_satisfaction == 3.5
    assert stats.avg_usefulness == 3.5
    assert stats.avg_instructor == 4.0
    assert stats.avg_recommendation == 7.75
    overall = [r["survey_overall_score"] for r in ROWS]
    assert stats.avg_overall == round_half_up(sum(overall) / len(overall), 2)
    assert summarize(ROWS, SurveyFilters()) == stats


def test_filters_are_conjunctive():
    stats = summarize(ROWS, SurveyFilters(event_type="Summit", year=2025))
    assert stats.response_count == 1
    assert stats.avg_satisfaction == 2.0

    assert summarize(ROWS, SurveyFilters(event_type="Workshop", month=11)).response_count == 2
    assert summarize(ROWS, SurveyFilters(template_id=2)).response_count == 2
    assert summarize(ROWS, SurveyFilters(template_id=2, month=11)).response_count == 0


def test_empty_selection_has_no_averages():
    stats = summarize(ROWS, SurveyFilters(year=1999))
    assert stats.response_count == 0
    assert stats.avg_overall is None
    assert stats.net_promoter_score is None
    assert stats.bucket_counts == {}


def test_bucket_counts_and_nps():
    stats = summarize(ROWS)
    assert stats.bucket_counts == {"Detractor": 1, "Promoter": 2, "Passive": 1}
    assert stats.net_promoter_score == 25.0


def test_missing_scores_are_skipped():
    rows = [row(5, 5, 5, 10), {**row(1, 1, 1, 0), "survey_satisfaction_score": None}]
    assert summarize(rows).avg_satisfaction == 5.0
    assert summarize(rows).response_count == 2
