"""Test configuration and fixtures for Folio tests."""

import logging
import re
import sys
from pathlib import Path

import pytest

# Add src to path for development testing
_src_dir = Path(__file__).parent.parent / "src"
if _src_dir.exists():
    sys.path.insert(0, str(_src_dir))

from folio.config import Config  # noqa: E402

TEST_EMAIL = "owner@example.com"
TEST_PASSWORD = "secret123"

# Smallest valid PNG (1x1 transparent pixel)
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


def get_csrf_token(response) -> str:
    """
    Extract CSRF token from a response's HTML.

    Args:
        response: Flask test client response.

    Returns:
        The CSRF token string, or empty string if not found.
    """
    match = re.search(
        rb'name="csrf_token"[^>]*value="([^"]*)"',
        response.data
    )
    if match:
        return match.group(1).decode("utf-8")
    return ""


# ==============================================================================
# Shared pytest fixtures
# ==============================================================================

@pytest.fixture
def config(tmp_path) -> Config:
    """Config pointing at a temporary database and storage root."""
    cfg = Config()
    cfg.database.url = f"sqlite:///{(tmp_path / 'folio.db').as_posix()}"
    cfg.storage.root = str(tmp_path / "storage")
    cfg.server.secret_key = "test-secret-key"
    cfg.session.keep_alive_seconds = 3600
    cfg.public.section_timeout_seconds = 10.0
    return cfg


@pytest.fixture
def app(config):
    """Flask app with CSRF disabled (one test class enables it explicitly)."""
    from folio.web import create_app

    app = create_app(config)
    app.config["TESTING"] = True
    app.config["WTF_CSRF_ENABLED"] = False
    yield app
    app.extensions["folio"].shutdown()


@pytest.fixture
def services(app):
    return app.extensions["folio"]


@pytest.fixture
def user_id(app, services) -> str:
    """Register the test account and return its id."""
    with app.app_context():
        return services.auth.create_user(TEST_EMAIL, TEST_PASSWORD).id


@pytest.fixture
def other_user_id(app, services) -> str:
    with app.app_context():
        return services.auth.create_user("other@example.com", "other-secret").id


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def logged_in(client, user_id):
    """A test client with an authenticated session."""
    response = client.post("/login", data={"email": TEST_EMAIL, "password": TEST_PASSWORD})
    assert response.status_code == 302
    return client


@pytest.fixture
def ctx(app):
    """Push an application context for direct backend/repository calls."""
    with app.app_context():
        yield


@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made by logging setup under test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    folio_level = logging.getLogger("folio").level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("folio").setLevel(folio_level)
