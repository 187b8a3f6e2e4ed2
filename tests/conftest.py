import sys
from pathlib import Path

import pytest

# Ensure `reviews_worker` is importable when running pytest from the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reviews_worker.core import config  # noqa: E402

CREDENTIAL_ENV = ("GOOGLE_MAPS_API_KEY", "OUTSCRAPER_API_KEY", "SERPAPI_API_KEY", "OPENAI_API_KEY")


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep a developer's .env and shell credentials out of every test."""
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in CREDENTIAL_ENV:
        monkeypatch.delenv(name, raising=False)
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()
