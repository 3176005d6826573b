import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, delete, extract, func, insert, or_, select, update

from config import Config
from database import (
    Database, donations, event_occurrences, event_templates, milestones, nps_buckets, nps_rules,
    participants, registration_status, registrations, surveys, users,
)
from models import NpsRule, Page, SurveyFilters
from nps import NpsResolver
from reporting import overall_score, summarize
from utils import MONTHS, total_pages

logger = logging.getLogger(__name__)

PARTICIPANT_NAME_COLUMNS = [
    participants.c.participant_first_name,
    participants.c.participant_last_name,
]


class ResourceManager:
    """Paginated, searchable access to one table (optionally joined for display)."""

    def __init__(self, db: Database, table, key: str, source=None, columns=None,
                 search_columns=(), order_by=(), page_size: int = Config.PAGE_SIZE):
        self.db = db
        self.table = table
        self.key = table.c[key]
        self.source = source if source is not None else table
        self.columns = columns or [table]
        self.search_columns = list(search_columns)
        self.order_by = list(order_by)
        self.page_size = page_size

    def select(self):
        return select(*self.columns).select_from(self.source)

    def search_clause(self, search: str):
        """Case-insensitive substring match on any search column."""
        pattern = f"%{search.lower()}%"
        return or_(*(func.lower(c).like(pattern) for c in self.search_columns))

    def list_page(self, page: int = 1, search: str = "", where=(), order_by=None, page_size=None) -> Page:
        """Return one page of rows plus the total count under the same conditions."""
        limit = page_size or self.page_size
        conditions = list(where)
        if search and self.search_columns:
            conditions.append(self.search_clause(search))
        total = self.db.scalar(select(func.count(self.key)).select_from(self.source).where(*conditions))
        stmt = (
            self.select()
            .where(*conditions)
            .order_by(*(order_by if order_by is not None else self.order_by))
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return Page(self.db.fetch_all(stmt), page, total_pages(total, limit), total, search)

    def get(self, item_id) -> Optional[dict]:
        return self.db.fetch_one(select(self.table).where(self.key == item_id))

    def create(self, values: dict) -> int:
        return self.db.insert(insert(self.table).values(**values))

    def update(self, item_id, values: dict) -> bool:
        return self.db.execute(update(self.table).where(self.key == item_id).values(**values)) > 0

    def delete(self, item_id, *where) -> bool:
        return self.db.execute(delete(self.table).where(self.key == item_id, *where)) > 0


class ParticipantManager(ResourceManager):
    def __init__(self, db: Database):
        super().__init__(
            db, participants, "participant_id",
            search_columns=PARTICIPANT_NAME_COLUMNS + [participants.c.participant_email],
            order_by=[participants.c.participant_last_name, participants.c.participant_first_name],
        )

    def options(self) -> list:
        """Participants for the dropdowns on the add/edit forms."""
        return self.db.fetch_all(
            select(participants.c.participant_id, *PARTICIPANT_NAME_COLUMNS, participants.c.participant_email)
            .order_by(participants.c.participant_last_name)
        )

    def without_accounts(self) -> list:
        """Participants not yet linked to a user account."""
        linked = select(users.c.participant_id).where(users.c.participant_id.is_not(None))
        return self.db.fetch_all(
            select(participants.c.participant_id, *PARTICIPANT_NAME_COLUMNS, participants.c.participant_email)
            .where(participants.c.participant_id.not_in(linked))
            .order_by(participants.c.participant_last_name)
        )


class UserManager(ResourceManager):
    def __init__(self, db: Database):
        source = users.outerjoin(participants, users.c.participant_id == participants.c.participant_id)
        super().__init__(
            db, users, "user_id",
            source=source,
            # never expose the password hash in listings
            columns=[
                users.c.user_id, users.c.username, users.c.participant_id,
                *PARTICIPANT_NAME_COLUMNS, participants.c.participant_email, participants.c.participant_role,
            ],
            search_columns=[users.c.username, *PARTICIPANT_NAME_COLUMNS, participants.c.participant_email],
            order_by=[users.c.username],
        )

    def get(self, user_id) -> Optional[dict]:
        return self.db.fetch_one(self.select().where(users.c.user_id == user_id))

    def get_for_login(self, username: str) -> Optional[dict]:
        """Retrieve a user with password hash and linked participant details."""
        return self.db.fetch_one(
            select(users, *PARTICIPANT_NAME_COLUMNS, participants.c.participant_role)
            .select_from(self.source)
            .where(users.c.username == username)
        )

    def username_taken(self, username: str, exclude_id=None) -> bool:
        stmt = select(func.count(users.c.user_id)).where(users.c.username == username)
        if exclude_id is not None:
            stmt = stmt.where(users.c.user_id != exclude_id)
        return self.db.scalar(stmt) > 0

    def session_version(self, user_id) -> Optional[int]:
        return self.db.scalar(select(users.c.session_version).where(users.c.user_id == user_id))

    def end_sessions(self, user_id) -> bool:
        """Invalidate every session cookie issued to the user so far."""
        return self.db.execute(
            update(users)
            .where(users.c.user_id == user_id)
            .values(session_version=users.c.session_version + 1)
        ) > 0

    def create_user(self, username: str, password_hash: str, participant_id=None) -> int:
        return self.create({"username": username, "password": password_hash, "participant_id": participant_id})

    def create_with_participant(self, participant_values: dict, username: str, password_hash: str):
        """Insert a participant and its user account together; both or neither are stored."""
        with self.db.transaction() as conn:
            participant_id = conn.execute(insert(participants).values(**participant_values)).inserted_primary_key[0]
            user_id = conn.execute(
                insert(users).values(username=username, password=password_hash, participant_id=participant_id)
            ).inserted_primary_key[0]
        return user_id, participant_id

    def update_user(self, user_id, username: str, password_hash: Optional[str],
                    participant_id: Optional[int], participant_role: str) -> bool:
        """Update the account and, when linked, the participant's role."""
        values = {"username": username, "participant_id": participant_id}
        if password_hash:
            values["password"] = password_hash
        with self.db.transaction() as conn:
            updated = conn.execute(update(users).where(users.c.user_id == user_id).values(**values)).rowcount
            if updated and participant_id:
                conn.execute(
                    update(participants)
                    .where(participants.c.participant_id == participant_id)
                    .values(participant_role=participant_role)
                )
        return updated > 0


class TemplateManager(ResourceManager):
    def __init__(self, db: Database):
        super().__init__(
            db, event_templates, "template_id",
            search_columns=[event_templates.c.event_name, event_templates.c.event_type],
            order_by=[event_templates.c.event_name],
        )

    def all(self) -> list:
        return self.db.fetch_all(select(event_templates).order_by(event_templates.c.event_name))


class EventManager(ResourceManager):
    """Event occurrences, their templates, and participant registrations."""

    def __init__(self, db: Database):
        source = event_occurrences.outerjoin(
            event_templates, event_occurrences.c.template_id == event_templates.c.template_id
        )
        super().__init__(
            db, event_occurrences, "occurrence_id",
            source=source,
            columns=[
                event_occurrences,
                event_templates.c.event_name, event_templates.c.event_type, event_templates.c.event_description,
            ],
            order_by=[event_occurrences.c.event_datetime_start],
            page_size=Config.EVENTS_PAGE_SIZE,
        )

    @staticmethod
    def timing_clause(when: str, now: datetime):
        start = event_occurrences.c.event_datetime_start
        return start < now if when == "past" else start >= now

    @staticmethod
    def filter_conditions(event_type=None, template_id=None, year=None, month=None) -> list:
        start = event_occurrences.c.event_datetime_start
        conditions = []
        if event_type:
            conditions.append(event_templates.c.event_type == event_type)
        if template_id:
            conditions.append(event_templates.c.template_id == template_id)
        if year:
            conditions.append(extract("year", start) == year)
        if month:
            conditions.append(extract("month", start) == month)
        return conditions

    def list_occurrences(self, page: int = 1, when: str = "future", event_type=None, template_id=None,
                         year=None, month=None, exclude_participant_id=None, now=None) -> Page:
        """Manager and browse listing: future (soonest first) or past (latest first) occurrences."""
        now = now or datetime.now()
        start = event_occurrences.c.event_datetime_start
        conditions = [self.timing_clause(when, now)]
        conditions += self.filter_conditions(event_type, template_id, year, month)
        if exclude_participant_id is not None:
            registered = select(registrations.c.occurrence_id).where(
                registrations.c.participant_id == exclude_participant_id
            )
            conditions.append(event_occurrences.c.occurrence_id.not_in(registered))
        order = [start.desc()] if when == "past" else [start.asc()]
        return self.list_page(page, where=conditions, order_by=order)

    def filter_options(self, event_type=None, future_only=False, now=None) -> dict:
        """Cascading dropdown options: all types, templates narrowed by type, years, months."""
        now = now or datetime.now()
        start = event_occurrences.c.event_datetime_start
        types = self.db.fetch_all(
            select(event_templates.c.event_type)
            .where(event_templates.c.event_type.is_not(None))
            .distinct()
            .order_by(event_templates.c.event_type)
        )
        templates_stmt = select(
            event_templates.c.template_id, event_templates.c.event_name, event_templates.c.event_type
        ).order_by(event_templates.c.event_name)
        if event_type:
            templates_stmt = templates_stmt.where(event_templates.c.event_type == event_type)

        year = extract("year", start).label("year")
        years_stmt = select(year).where(start.is_not(None)).distinct()
        if future_only:
            years_stmt = years_stmt.where(start >= now).order_by(year.asc())
        else:
            years_stmt = years_stmt.order_by(year.desc())

        return {
            "event_types": [t["event_type"] for t in types],
            "event_templates": self.db.fetch_all(templates_stmt),
            "available_years": [int(y["year"]) for y in self.db.fetch_all(years_stmt)],
            "months": MONTHS,
        }

    def registrations_for(self, participant_id, page: int = 1, when: str = "future", now=None) -> Page:
        """A participant's own registrations, with event and status details."""
        now = now or datetime.now()
        start = event_occurrences.c.event_datetime_start
        source = (
            registrations
            .outerjoin(event_occurrences, registrations.c.occurrence_id == event_occurrences.c.occurrence_id)
            .outerjoin(event_templates, event_occurrences.c.template_id == event_templates.c.template_id)
            .outerjoin(registration_status, registrations.c.status_id == registration_status.c.status_id)
        )
        view = ResourceManager(
            self.db, registrations, "registration_id",
            source=source,
            columns=[
                registrations.c.registration_id, registrations.c.registration_created_at,
                event_occurrences.c.occurrence_id, start, event_occurrences.c.event_datetime_end,
                event_occurrences.c.event_location, event_occurrences.c.event_capacity,
                event_templates.c.event_name, event_templates.c.event_type, event_templates.c.event_description,
                registration_status.c.status_text,
            ],
            page_size=self.page_size,
        )
        conditions = [registrations.c.participant_id == participant_id, self.timing_clause(when, now)]
        order = [start.desc()] if when == "past" else [start.asc()]
        return view.list_page(page, where=conditions, order_by=order)

    def is_registered(self, participant_id, occurrence_id) -> bool:
        return self.db.scalar(
            select(func.count(registrations.c.registration_id)).where(
                registrations.c.participant_id == participant_id,
                registrations.c.occurrence_id == occurrence_id,
            )
        ) > 0

    def register(self, participant_id, occurrence_id) -> Optional[int]:
        """Register a participant; returns None when the pair is already registered."""
        if self.is_registered(participant_id, occurrence_id):
            return None
        status_id = self.db.scalar(
            select(registration_status.c.status_id).order_by(registration_status.c.status_id).limit(1)
        )
        return self.db.insert(insert(registrations).values(
            participant_id=participant_id,
            occurrence_id=occurrence_id,
            status_id=status_id or 1,
            registration_created_at=datetime.now(),
        ))

    def unregister(self, registration_id, participant_id) -> bool:
        """Delete the registration only if it belongs to `participant_id`."""
        return self.db.execute(
            delete(registrations).where(
                registrations.c.registration_id == registration_id,
                registrations.c.participant_id == participant_id,
            )
        ) > 0


class SurveyManager(ResourceManager):
    def __init__(self, db: Database):
        source = (
            surveys
            .join(registrations, surveys.c.registration_id == registrations.c.registration_id)
            .join(event_occurrences, registrations.c.occurrence_id == event_occurrences.c.occurrence_id)
            .outerjoin(event_templates, event_occurrences.c.template_id == event_templates.c.template_id)
            .outerjoin(participants, registrations.c.participant_id == participants.c.participant_id)
            .outerjoin(nps_rules, surveys.c.nps_rule_id == nps_rules.c.nps_rule_id)
            .outerjoin(nps_buckets, nps_rules.c.nps_bucket_id == nps_buckets.c.nps_bucket_id)
        )
        super().__init__(
            db, surveys, "survey_id",
            source=source,
            columns=[
                surveys,
                registrations.c.participant_id,
                *PARTICIPANT_NAME_COLUMNS,
                event_occurrences.c.occurrence_id, event_occurrences.c.event_datetime_start,
                event_templates.c.template_id, event_templates.c.event_name, event_templates.c.event_type,
                nps_buckets.c.nps_bucket_name,
            ],
            search_columns=PARTICIPANT_NAME_COLUMNS + [event_templates.c.event_name],
            order_by=[surveys.c.survey_submission_date.desc()],
        )

    def list_filtered(self, filters: SurveyFilters, page: int = 1, search: str = "") -> Page:
        conditions = EventManager.filter_conditions(filters.event_type, filters.template_id, filters.year, filters.month)
        return self.list_page(page, search, where=conditions)

    def view(self, survey_id) -> Optional[dict]:
        return self.db.fetch_one(self.select().where(surveys.c.survey_id == survey_id))

    def report_rows(self) -> list:
        """Every survey with the columns the aggregate report needs."""
        return self.db.fetch_all(
            select(
                surveys.c.survey_satisfaction_score,
                surveys.c.survey_usefulness_score,
                surveys.c.survey_instructor_score,
                func.coalesce(nps_rules.c.recommendation_score, surveys.c.survey_recommendation_score)
                .label("recommendation_score"),
                surveys.c.survey_overall_score,
                event_templates.c.template_id,
                event_templates.c.event_type,
                event_occurrences.c.event_datetime_start,
                nps_buckets.c.nps_bucket_name,
            ).select_from(self.source)
        )

    def stats(self, filters: SurveyFilters):
        """Filtered aggregate stats plus the unfiltered grand total."""
        rows = self.report_rows()
        return summarize(rows, filters), len(rows)

    def nps_rules(self) -> list:
        rows = self.db.fetch_all(
            select(nps_rules, nps_buckets.c.nps_bucket_name)
            .select_from(nps_rules.outerjoin(nps_buckets, nps_rules.c.nps_bucket_id == nps_buckets.c.nps_bucket_id))
            .order_by(nps_rules.c.nps_rule_id)
        )
        return [
            NpsRule(
                id=r["nps_rule_id"],
                bucket_id=r["nps_bucket_id"],
                recommendation_score=r["recommendation_score"],
                min_score=r["nps_min_score"],
                max_score=r["nps_max_score"],
                bucket_name=r["nps_bucket_name"],
            )
            for r in rows
        ]

    def resolve_rule_id(self, recommendation: int) -> Optional[int]:
        return NpsResolver(self.nps_rules()).resolve_id(recommendation)

    def _pending_select(self, participant_id, now):
        start = event_occurrences.c.event_datetime_start
        return (
            select(
                registrations.c.registration_id,
                event_occurrences.c.occurrence_id, start,
                event_templates.c.event_name, event_templates.c.event_type,
            )
            .select_from(
                registrations
                .join(event_occurrences, registrations.c.occurrence_id == event_occurrences.c.occurrence_id)
                .outerjoin(event_templates, event_occurrences.c.template_id == event_templates.c.template_id)
                .outerjoin(surveys, surveys.c.registration_id == registrations.c.registration_id)
            )
            .where(
                registrations.c.participant_id == participant_id,
                start < now,
                surveys.c.survey_id.is_(None),
            )
        )

    def pending_for(self, participant_id, now=None) -> list:
        """Registrations for events that already started and have no survey yet."""
        now = now or datetime.now()
        stmt = self._pending_select(participant_id, now).order_by(event_occurrences.c.event_datetime_start.desc())
        return self.db.fetch_all(stmt)

    def pending_registration(self, registration_id, participant_id, now=None) -> Optional[dict]:
        now = now or datetime.now()
        return self.db.fetch_one(
            self._pending_select(participant_id, now).where(registrations.c.registration_id == registration_id)
        )

    def completed_for(self, participant_id) -> list:
        return self.db.fetch_all(
            self.select()
            .where(registrations.c.participant_id == participant_id)
            .order_by(surveys.c.survey_submission_date.desc())
        )

    def score_values(self, form) -> dict:
        """Column values for a survey form, with the derived overall score and NPS rule."""
        return {
            "survey_satisfaction_score": form.satisfaction,
            "survey_usefulness_score": form.usefulness,
            "survey_instructor_score": form.instructor,
            "survey_recommendation_score": form.recommendation,
            "survey_overall_score": overall_score(
                form.satisfaction, form.usefulness, form.instructor, form.recommendation
            ),
            "survey_comments": form.comments,
            "nps_rule_id": self.resolve_rule_id(form.recommendation),
        }

    def submit(self, registration_id, form) -> int:
        values = self.score_values(form)
        values.update(registration_id=registration_id, survey_submission_date=datetime.now())
        return self.create(values)


class MilestoneManager(ResourceManager):
    def __init__(self, db: Database):
        source = milestones.outerjoin(participants, milestones.c.participant_id == participants.c.participant_id)
        super().__init__(
            db, milestones, "milestone_id",
            source=source,
            columns=[milestones, *PARTICIPANT_NAME_COLUMNS],
            search_columns=PARTICIPANT_NAME_COLUMNS + [milestones.c.milestone_title],
            order_by=[milestones.c.milestone_date.desc()],
        )

    def for_participant(self, participant_id) -> list:
        return self.db.fetch_all(
            select(milestones)
            .where(milestones.c.participant_id == participant_id)
            .order_by(milestones.c.milestone_date.desc())
        )


def _nulls_last(column):
    return case((column.is_(None), 1), else_=0)


class DonationManager(ResourceManager):
    def __init__(self, db: Database):
        source = donations.outerjoin(participants, donations.c.participant_id == participants.c.participant_id)
        super().__init__(
            db, donations, "donation_id",
            source=source,
            columns=[donations, *PARTICIPANT_NAME_COLUMNS, participants.c.participant_email],
            search_columns=PARTICIPANT_NAME_COLUMNS + [participants.c.participant_email],
            order_by=[_nulls_last(donations.c.donation_date), donations.c.donation_date.desc()],
        )

    def total_amount(self):
        """Sum of every donation, regardless of search or page."""
        return self.db.scalar(select(func.coalesce(func.sum(donations.c.donation_amount), 0)))

    def for_participant(self, participant_id) -> list:
        return self.db.fetch_all(
            select(donations.c.donation_id, donations.c.donation_amount, donations.c.donation_date)
            .where(donations.c.participant_id == participant_id)
            .order_by(donations.c.donation_date.desc())
        )

    def supporters(self, page: int = 1, search: str = "", page_size: int = Config.SUPPORTERS_PAGE_SIZE) -> Page:
        """One row per donor with their latest donation date; anonymous donations group together."""
        latest = func.max(donations.c.donation_date)
        stmt = (
            select(participants.c.participant_id, *PARTICIPANT_NAME_COLUMNS, latest.label("latest_donation"))
            .select_from(self.source)
            .group_by(participants.c.participant_id, *PARTICIPANT_NAME_COLUMNS)
            .order_by(_nulls_last(latest), latest.desc())
        )
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.having(or_(*(func.lower(c).like(pattern) for c in PARTICIPANT_NAME_COLUMNS)))
        rows = self.db.fetch_all(stmt)
        offset = (page - 1) * page_size
        return Page(rows[offset:offset + page_size], page, total_pages(len(rows), page_size), len(rows), search)

    def record(self, amount, participant_id=None, donation_date: Optional[date] = None) -> int:
        return self.create({
            "donation_amount": amount,
            "participant_id": participant_id,
            "donation_date": donation_date or date.today(),
        })
