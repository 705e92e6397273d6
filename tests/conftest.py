import pytest
import os
import tempfile
from unittest.mock import MagicMock, patch
from dotenv import load_dotenv

# Settings are read at import time by several modules; make sure they never
# need a real key and never write uploads into the working tree.
DUMMY_OPENAI_KEY = "sk-test-dummy"
os.environ.setdefault("OPENAI_API_KEY", DUMMY_OPENAI_KEY)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="homefix-uploads-"))

@pytest.fixture(scope="session", autouse=True)
def _load_env():
    # Load .env once per session to avoid side-effects on import time
    load_dotenv()

def _truthy(v: str | None) -> bool:
    return v is not None and v.strip().lower() not in ("", "0", "false", "no")

@pytest.fixture(scope="session")
def allow_integration(_load_env) -> bool:
    # Depends on _load_env to ensure .env is loaded first
    return _truthy(os.getenv("RUN_INTEGRATION_TESTS"))

@pytest.fixture(scope="session")
def openai_api_key(_load_env) -> str | None:
    key = os.getenv("OPENAI_API_KEY")
    if not key or key in ("sk-...", DUMMY_OPENAI_KEY):
        return None
    return key

# Global setup to ensure we don't accidentally touch production DB

@pytest.fixture(scope="function")
def test_db(tmp_path):
    """
    Creates a temporary database for testing and initializes the schema.
    `store.db` reads `settings.DB_PATH` on every connection, so pointing the
    cached settings singleton at a temp file is enough.
    """
    db_file = tmp_path / "test_homefix.db"

    from homefix.config import get_settings
    settings = get_settings()

    original_db_path = settings.DB_PATH
    settings.DB_PATH = str(db_file)

    # Initialize Schema
    from homefix.store.db import init_db
    init_db()

    yield settings

    # Teardown
    settings.DB_PATH = original_db_path

@pytest.fixture
def mock_llm_client():
    """
    A stand-in for LLMClient; set `.complete.return_value` (or side_effect) per test.
    """
    client = MagicMock()
    client.complete.return_value = "{}"
    return client

@pytest.fixture
def mock_fetch():
    """
    Patches the shared fetcher used by every scraper. Tests set
    `.return_value` / `.side_effect` on the yielded AsyncMock.
    """
    with patch("homefix.retrieval.fetch.fetcher.fetch_text") as mock:
        yield mock

@pytest.fixture
def sample_analysis_dict():
    return {
        "materials": [
            {"name": "Spackling compound", "spec": "lightweight", "qty": "1 tub"},
            {"name": "Sandpaper", "spec": "220 grit", "qty": "2 sheets"},
        ],
        "tools": [{"name": "Putty knife", "purpose": "apply compound"}],
        "steps": ["Clean the hole", "Apply compound", "Sand smooth", "Prime and paint"],
        "likelihood": {"small_hole": 0.8, "water_damage": 0.2},
        "safety": ["Wear a dust mask when sanding"],
        "youtube_search_term": "how to patch small drywall hole",
    }
