import os
import logging
from pathlib import Path
from typing import Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError

from wiki_pathfinder.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://en.wikipedia.org/w/api.php"
DEFAULT_SECRETS_FILE = "./secrets.txt"


class PathfinderConfig(BaseModel):
    """Configuration for a path finding run."""

    # Remote service
    api_url: str = DEFAULT_API_URL
    secrets_file: str = DEFAULT_SECRETS_FILE
    request_timeout: float = Field(30.0, gt=0)
    user_agent: str = "wiki-pathfinder/0.1 (https://github.com/wiki-pathfinder)"

    # Search
    max_depth: int = Field(6, ge=0)

    # Worker pool
    workers: int = Field(8, ge=1)
    queue_size: int = Field(100, ge=1)

    # Retry policy for transient fetch failures
    max_attempts: int = Field(3, ge=1)
    backoff_base: float = Field(0.5, ge=0)
    backoff_factor: float = Field(2.0, ge=1)
    max_backoff: float = Field(30.0, ge=0)
    # How long a cancelled pool waits for in-flight fetches before abandoning them
    shutdown_grace: float = Field(5.0, ge=0)

    @classmethod
    def from_env(cls, **overrides) -> "PathfinderConfig":
        """
        Create config from environment variables (a local .env file is honoured).
        Keyword arguments that are not None take precedence over the environment.

        Raises:
            ConfigError: if a setting is not a valid value.
        """
        load_dotenv()
        settings = {
            "api_url": os.getenv("WIKI_PATHFINDER_API_URL", DEFAULT_API_URL),
            "secrets_file": os.getenv("WIKI_PATHFINDER_SECRETS", DEFAULT_SECRETS_FILE),
            "request_timeout": os.getenv("WIKI_PATHFINDER_TIMEOUT", "30"),
            "max_depth": os.getenv("WIKI_PATHFINDER_MAX_DEPTH", "6"),
            "workers": os.getenv("WIKI_PATHFINDER_WORKERS", "8"),
            "queue_size": os.getenv("WIKI_PATHFINDER_QUEUE_SIZE", "100"),
            "max_attempts": os.getenv("WIKI_PATHFINDER_MAX_ATTEMPTS", "3"),
            "backoff_base": os.getenv("WIKI_PATHFINDER_BACKOFF_BASE", "0.5"),
        }
        settings.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls.model_validate(settings)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
            )
            raise ConfigError(f"Invalid settings: {problems}") from e


class Credentials(BaseModel):
    """Username and password of the bot account used to log in to the API."""
    username: str = Field(..., min_length=1)
    password: SecretStr

    @classmethod
    def from_file(cls, secret_file: Union[str, Path]) -> "Credentials":
        """
        Read credentials from a two-line file: username on the first line,
        password on the second.

        Raises:
            ConfigError: if the file can't be read or either line is missing or blank.
        """
        path = Path(secret_file)
        try:
            contents = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Could not read credentials file '{path}': {e}") from e

        rows = contents.split("\n")
        if len(rows) < 2 or not rows[0].strip() or not rows[1].strip():
            raise ConfigError(
                f"Credentials file '{path}' must contain a username and a password on separate lines"
            )

        logger.debug(f"Loaded credentials for '{rows[0].strip()}' from {path}")
        return cls(username=rows[0].strip(), password=rows[1].strip())
