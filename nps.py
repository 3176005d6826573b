"""Net Promoter Score classification.

A survey's recommendation score is classified by the NPS rules table. A rule
either names one exact `recommendation_score` or an inclusive
`nps_min_score`..`nps_max_score` range. Exact rules are consulted first; range
rules only when no exact rule exists. When several rules of the same tier
match, the one with the lowest rule id wins. No match is not an error: the
survey simply carries no classification.
"""

from typing import Iterable, Optional

from intervaltree import IntervalTree

from models import NpsRule


class NpsResolver:
    def __init__(self, rules: Iterable[NpsRule]):
        """Index the rules once: a dict for exact scores, an interval tree for ranges."""
        self.exact = {}
        self.ranges = IntervalTree()
        for rule in sorted(rules, key=lambda r: r.id):
            if rule.recommendation_score is not None:
                self.exact.setdefault(rule.recommendation_score, rule)
            if rule.min_score is not None and rule.max_score is not None and rule.min_score <= rule.max_score:
                # IntervalTree ranges are half-open; scores are integers
                self.ranges[rule.min_score:rule.max_score + 1] = rule

    def resolve(self, score: int) -> Optional[NpsRule]:
        """Return the rule classifying `score`, or None."""
        if score in self.exact:
            return self.exact[score]
        matches = self.ranges[score]
        if not matches:
            return None
        return min((iv.data for iv in matches), key=lambda r: r.id)

    def resolve_id(self, score: int) -> Optional[int]:
        rule = self.resolve(score)
        return rule.id if rule else None


def net_promoter_score(bucket_counts: dict, total: int) -> Optional[float]:
    """%Promoter - %Detractor over `total` classified responses."""
    if not total:
        return None
    promoters = bucket_counts.get("Promoter", 0)
    detractors = bucket_counts.get("Detractor", 0)
    return (promoters - detractors) * 100 / total
