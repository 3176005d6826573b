import logging
import time
from contextlib import contextmanager

from sqlalchemy import (
    Column, Date, DateTime, ForeignKey, Integer, MetaData, Numeric, String, Table, Text,
    create_engine, delete, event, func, insert, select,
)
from sqlalchemy.engine import URL
from sqlalchemy.exc import DisconnectionError

from config import Config

logger = logging.getLogger(__name__)

metadata = MetaData()

participants = Table(
    "participants", metadata,
    Column("participant_id", Integer, primary_key=True),
    Column("participant_first_name", String(100), nullable=False),
    Column("participant_last_name", String(100), nullable=False),
    Column("participant_email", String(255), nullable=False),
    Column("participant_dob", Date),
    Column("participant_phone", String(30)),
    Column("participant_city", String(100)),
    Column("participant_state", String(50)),
    Column("participant_zip", String(20)),
    Column("participant_school_or_employer", String(200)),
    Column("participant_field_of_interest", String(200)),
    Column("participant_role", String(20), nullable=False, default="participant"),
)

users = Table(
    "users", metadata,
    Column("user_id", Integer, primary_key=True),
    Column("username", String(100), nullable=False, unique=True, index=True),
    Column("password", String(255), nullable=False),
    # bumped on logout; cookies carrying an older value are refused
    Column("session_version", Integer, nullable=False, default=0, server_default="0"),
    Column("participant_id", Integer, ForeignKey("participants.participant_id", ondelete="SET NULL")),
)

event_templates = Table(
    "event_templates", metadata,
    Column("template_id", Integer, primary_key=True),
    Column("event_name", String(200), nullable=False),
    Column("event_type", String(100)),
    Column("event_description", Text),
)

event_occurrences = Table(
    "event_occurrences", metadata,
    Column("occurrence_id", Integer, primary_key=True),
    Column("template_id", Integer, ForeignKey("event_templates.template_id", ondelete="CASCADE")),
    Column("event_datetime_start", DateTime, index=True),
    Column("event_datetime_end", DateTime),
    Column("event_location", String(200)),
    Column("event_capacity", Integer),
    Column("event_registration_deadline", DateTime),
)

registration_status = Table(
    "registration_status", metadata,
    Column("status_id", Integer, primary_key=True),
    Column("status_text", String(50), nullable=False),
)

registrations = Table(
    "registrations", metadata,
    Column("registration_id", Integer, primary_key=True),
    Column("participant_id", Integer, ForeignKey("participants.participant_id", ondelete="CASCADE"), index=True),
    Column("occurrence_id", Integer, ForeignKey("event_occurrences.occurrence_id", ondelete="CASCADE"), index=True),
    Column("status_id", Integer, ForeignKey("registration_status.status_id")),
    Column("registration_created_at", DateTime),
)

nps_buckets = Table(
    "nps_buckets", metadata,
    Column("nps_bucket_id", Integer, primary_key=True),
    Column("nps_bucket_name", String(50), nullable=False),
)

nps_rules = Table(
    "nps_rules", metadata,
    Column("nps_rule_id", Integer, primary_key=True),
    Column("recommendation_score", Integer),
    Column("nps_min_score", Integer),
    Column("nps_max_score", Integer),
    Column("nps_bucket_id", Integer, ForeignKey("nps_buckets.nps_bucket_id")),
)

surveys = Table(
    "surveys", metadata,
    Column("survey_id", Integer, primary_key=True),
    Column("registration_id", Integer, ForeignKey("registrations.registration_id", ondelete="CASCADE"), index=True),
    Column("survey_satisfaction_score", Integer),
    Column("survey_usefulness_score", Integer),
    Column("survey_instructor_score", Integer),
    Column("survey_recommendation_score", Integer),
    Column("survey_overall_score", Integer),
    Column("survey_comments", Text),
    Column("survey_submission_date", DateTime),
    Column("nps_rule_id", Integer, ForeignKey("nps_rules.nps_rule_id", ondelete="SET NULL")),
)

milestones = Table(
    "milestones", metadata,
    Column("milestone_id", Integer, primary_key=True),
    Column("milestone_title", String(200), nullable=False),
    Column("milestone_date", Date),
    Column("participant_id", Integer, ForeignKey("participants.participant_id", ondelete="CASCADE")),
)

donations = Table(
    "donations", metadata,
    Column("donation_id", Integer, primary_key=True),
    Column("donation_amount", Numeric(10, 2), nullable=False),
    Column("donation_date", Date),
    Column("participant_id", Integer, ForeignKey("participants.participant_id", ondelete="SET NULL")),
)

DEFAULT_STATUSES = ["Registered"]
DEFAULT_BUCKETS = ["Detractor", "Passive", "Promoter"]
# (min, max, bucket name)
DEFAULT_NPS_RANGES = [(0, 6, "Detractor"), (7, 8, "Passive"), (9, 10, "Promoter")]


def database_url():
    """Build the connection URL from the environment."""
    if Config.DATABASE_URL:
        return Config.DATABASE_URL
    return URL.create(
        "postgresql+psycopg",
        username=Config.DB_USER,
        password=Config.DB_PASSWORD,
        host=Config.DB_HOST,
        port=Config.DB_PORT,
        database=Config.DB_NAME,
    )


def expire_idle_connections(engine, idle_timeout):
    """
    Replace pooled connections that sat unused for `idle_timeout` seconds or more.

    The pool has no idle reaper, so the check happens lazily when a connection
    is checked out: a stale one is discarded and a fresh one opened in its place.
    """
    @event.listens_for(engine, "checkin")
    def stamp_checkin(dbapi_connection, connection_record):
        connection_record.info["checked_in_at"] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def check_idle(dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop("checked_in_at", None)
        if checked_in_at is not None and time.monotonic() - checked_in_at >= idle_timeout:
            raise DisconnectionError(f"Connection idle for more than {idle_timeout}s")


class Database:
    def __init__(self, url=None):
        """
        Initialize the connection pool shared by every route module.
        SQLite is accepted through DATABASE_URL for development and tests.
        """
        url = url or database_url()
        if str(url).startswith("sqlite"):
            self.engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            connect_args = {"sslmode": "require"} if Config.DB_SSL else {}
            self.engine = create_engine(
                url,
                pool_size=Config.DB_POOL_MIN,
                max_overflow=max(Config.DB_POOL_MAX - Config.DB_POOL_MIN, 0),
                pool_timeout=Config.DB_ACQUIRE_TIMEOUT,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
            expire_idle_connections(self.engine, Config.DB_IDLE_TIMEOUT)
        self.create_tables()

    def create_tables(self):
        """Create missing tables and seed the lookup data."""
        metadata.create_all(self.engine)
        self.seed_reference_data()

    def seed_reference_data(self):
        """Insert registration statuses and NPS buckets/rules when the tables are empty."""
        with self.engine.begin() as conn:
            if conn.execute(select(func.count()).select_from(registration_status)).scalar() == 0:
                conn.execute(insert(registration_status), [{"status_text": s} for s in DEFAULT_STATUSES])
            if conn.execute(select(func.count()).select_from(nps_buckets)).scalar() == 0:
                conn.execute(insert(nps_buckets), [{"nps_bucket_name": b} for b in DEFAULT_BUCKETS])
                bucket_ids = dict(conn.execute(select(nps_buckets.c.nps_bucket_name, nps_buckets.c.nps_bucket_id)).all())
                conn.execute(insert(nps_rules), [
                    {"nps_min_score": lo, "nps_max_score": hi, "nps_bucket_id": bucket_ids[name]}
                    for lo, hi, name in DEFAULT_NPS_RANGES
                ])
                logger.info("Seeded NPS buckets and rules")

    @contextmanager
    def transaction(self):
        """Yield a connection whose statements commit or roll back together."""
        with self.engine.begin() as conn:
            yield conn

    def fetch_all(self, stmt):
        """Run a SELECT and return the rows as dicts."""
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def fetch_one(self, stmt):
        """Run a SELECT and return the first row as a dict, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
            return dict(row._mapping) if row else None

    def scalar(self, stmt):
        """Run a SELECT returning a single value."""
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar()

    def execute(self, stmt):
        """Run a single write statement in its own transaction and return the rowcount."""
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def insert(self, stmt):
        """Run an INSERT and return the new primary key."""
        with self.engine.begin() as conn:
            return conn.execute(stmt).inserted_primary_key[0]

    def clear(self):
        """Delete every row, children first."""
        with self.engine.begin() as conn:
            for table in reversed(metadata.sorted_tables):
                conn.execute(delete(table))

    def close(self):
        """Close all pooled connections."""
        self.engine.dispose()
