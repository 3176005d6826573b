from dotenv import load_dotenv
import os

load_dotenv()


def _env(*names, default=None):
    """Return the first environment variable that is set among `names`."""
    for name in names:
        value = os.getenv(name)
        if value not in (None, ""):
            return value
    return default


class Config:
    # Session cookie
    SECRET_KEY = os.getenv("SECRET_KEY", "default-secret")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    SESSION_EXPIRE_MINUTES = int(os.getenv("SESSION_EXPIRE_MINUTES", "480"))
    SESSION_COOKIE = os.getenv("SESSION_COOKIE", "ella_session")
    COOKIE_SECURE = os.getenv("COOKIE_SECURE", "0") == "1"

    HOST = os.getenv("HOST", "127.0.0.1")
    PORT = int(os.getenv("PORT", "3000"))
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database; RDS_* names are what Elastic Beanstalk injects
    DATABASE_URL = os.getenv("DATABASE_URL", "")
    DB_HOST = _env("RDS_HOSTNAME", "DB_HOST", default="localhost")
    DB_USER = _env("RDS_USERNAME", "DB_USER", default="postgres")
    DB_PASSWORD = _env("RDS_PASSWORD", "DB_PASSWORD", default="")
    DB_NAME = _env("RDS_DB_NAME", "DB_NAME", default="ellarises")
    DB_PORT = int(_env("RDS_PORT", "DB_PORT", default="5432"))
    DB_SSL = _env("RDS_SSL", "DB_SSL", default="0") not in ("0", "false", "False")
    DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "2"))
    DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))
    DB_ACQUIRE_TIMEOUT = int(os.getenv("DB_ACQUIRE_TIMEOUT", "30"))
    DB_IDLE_TIMEOUT = int(os.getenv("DB_IDLE_TIMEOUT", "30"))

    # Page sizes
    PAGE_SIZE = 12
    EVENTS_PAGE_SIZE = 10
    SUPPORTERS_PAGE_SIZE = 20
