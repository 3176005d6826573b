from dataclasses import dataclass, field, asdict
from typing import Optional, Union

MANAGER_LEVEL = "M"
USER_LEVEL = "U"


@dataclass(frozen=True)
class AnonymousUser:
    is_authenticated = False
    is_manager = False


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    username: str
    level: str  # 'M' (manager) or 'U'
    participant_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    session_version: int = 0

    is_authenticated = True

    @property
    def is_manager(self) -> bool:
        return self.level == MANAGER_LEVEL

    def to_dict(self) -> dict:
        return asdict(self)


SessionUser = Union[AnonymousUser, AuthenticatedUser]


@dataclass(frozen=True)
class NpsRule:
    id: int
    bucket_id: Optional[int]
    recommendation_score: Optional[int] = None
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    bucket_name: Optional[str] = None


@dataclass
class Page:
    items: list
    page: int
    total_pages: int
    total_items: int
    search: str = ""

    def to_dict(self, key: str) -> dict:
        """Return the page in the shape the list views expect, items under `key`."""
        return {
            key: self.items,
            "current_page": self.page,
            "total_pages": self.total_pages,
            "total_items": self.total_items,
            "search": self.search,
        }


@dataclass(frozen=True)
class SurveyFilters:
    event_type: Optional[str] = None
    template_id: Optional[int] = None
    year: Optional[int] = None
    month: Optional[int] = None


@dataclass
class SurveyStats:
    avg_satisfaction: Optional[float]
    avg_usefulness: Optional[float]
    avg_instructor: Optional[float]
    avg_recommendation: Optional[float]
    avg_overall: Optional[float]
    response_count: int
    bucket_counts: dict = field(default_factory=dict)
    net_promoter_score: Optional[float] = None
