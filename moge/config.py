import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
PACKAGE_DIR = Path(__file__).resolve().parent


def _default_sqlite_uri() -> str:
    instance_path = BASE_DIR / "instance"
    instance_path.mkdir(exist_ok=True)
    return f"sqlite:///{instance_path / 'moge.db'}"


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_TIME_LIMIT = None
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    PROMPT_CONFIG_PATH = os.environ.get("PROMPT_CONFIG_PATH", str(PACKAGE_DIR / "prompt_config.json"))
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    ASSIST_API_BASE = os.environ.get("ASSIST_API_BASE")
    ASSIST_MODEL_NAME = os.environ.get("ASSIST_MODEL_NAME", "gpt-4o-mini")
    ASSIST_MAX_TOKENS = int(os.environ.get("ASSIST_MAX_TOKENS", "2000"))
    # Trailing characters of the chapter body embedded in a continuation prompt.
    ASSIST_CONTEXT_CHARS = int(os.environ.get("ASSIST_CONTEXT_CHARS", "2000"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    OPENAI_API_KEY = None
