"""Root test configuration for imgrelay.

Clears every environment variable the config layer reads so that a developer's
shell (or a CI runner's environment) never leaks into test expectations. Tests
that exercise env overrides set them explicitly with monkeypatch.
"""

import pytest

_CONFIG_ENV_VARS = (
    "IMGRELAY_CONFIG",
    "PORT",
    "HOST",
    "ALLOWED_ORIGINS",
    "MAX_FILE_SIZE",
    "REQUEST_TIMEOUT",
)


@pytest.fixture(autouse=True)
def isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove config env vars for every test."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def isolate_config_files(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ignore .imgrelay/config.yaml, ~/.imgrelay/config.yaml and .env on disk.

    Tests pass an explicit config_path when they want a file.
    """
    monkeypatch.setattr("imgrelay.config.DEFAULT_CONFIG_PATHS", [])
    monkeypatch.setattr("imgrelay.config.load_dotenv", lambda **kwargs: False)
