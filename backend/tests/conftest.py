from __future__ import annotations

import pytest
from flask.testing import FlaskClient

from backend.app import create_app
from backend.core.config import AppConfig


@pytest.fixture()
def client() -> FlaskClient:
    app = create_app(AppConfig())
    app.config.update(TESTING=True)
    with app.test_client() as test_client:
        yield test_client
