import pytest

from wiki_pathfinder.config import Credentials, DEFAULT_API_URL, PathfinderConfig
from wiki_pathfinder.exceptions import ConfigError

pytestmark = pytest.mark.unit


class TestCredentials:

    def test_reads_two_line_file(self, tmp_path):
        secrets = tmp_path / "secrets.txt"
        secrets.write_text("BotUser@crawler\n  s3cret  \n")

        credentials = Credentials.from_file(secrets)

        assert credentials.username == "BotUser@crawler"
        assert credentials.password.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(credentials)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Could not read"):
            Credentials.from_file(tmp_path / "nope.txt")

    def test_file_that_is_not_utf8(self, tmp_path):
        secrets = tmp_path / "secrets.txt"
        secrets.write_bytes(b"user\n\xff\xfepass\n")

        with pytest.raises(ConfigError, match="Could not read"):
            Credentials.from_file(secrets)

    @pytest.mark.parametrize("contents", ["", "only-a-username", "user\n", "\npassword", "user\n   \n"])
    def test_incomplete_file(self, tmp_path, contents):
        secrets = tmp_path / "secrets.txt"
        secrets.write_text(contents)

        with pytest.raises(ConfigError):
            Credentials.from_file(secrets)


class TestPathfinderConfig:

    def test_defaults(self):
        config = PathfinderConfig()

        assert config.api_url == DEFAULT_API_URL
        assert config.workers >= 1
        assert config.max_attempts >= 1

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WIKI_PATHFINDER_API_URL", "https://fi.wikipedia.org/w/api.php")
        monkeypatch.setenv("WIKI_PATHFINDER_WORKERS", "3")
        monkeypatch.setenv("WIKI_PATHFINDER_MAX_DEPTH", "4")

        config = PathfinderConfig.from_env()

        assert config.api_url == "https://fi.wikipedia.org/w/api.php"
        assert config.workers == 3
        assert config.max_depth == 4

    def test_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            PathfinderConfig(workers=0)

    @pytest.mark.parametrize("variable,value", [
        ("WIKI_PATHFINDER_WORKERS", "many"),
        ("WIKI_PATHFINDER_TIMEOUT", "soon"),
        ("WIKI_PATHFINDER_QUEUE_SIZE", "0"),
    ])
    def test_from_env_rejects_bad_values(self, monkeypatch, variable, value):
        monkeypatch.setenv(variable, value)

        with pytest.raises(ConfigError, match="Invalid settings"):
            PathfinderConfig.from_env()

    def test_from_env_overrides_take_precedence(self, monkeypatch):
        monkeypatch.setenv("WIKI_PATHFINDER_WORKERS", "3")
        monkeypatch.delenv("WIKI_PATHFINDER_MAX_DEPTH", raising=False)

        config = PathfinderConfig.from_env(workers=5, max_depth=None)

        assert config.workers == 5
        assert config.max_depth == 6
