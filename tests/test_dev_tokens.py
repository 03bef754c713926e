from __future__ import annotations

import asyncio
import os
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

from tubely.core.config import get_settings
from tubely.core.db import Base, create_engine
from tubely.main import create_app
from tests.support import FakeRunner

DEV_SECRET = "dev-secret"

pytestmark = pytest.mark.no_default_env


@pytest.fixture(autouse=True)
def dotenv_only(monkeypatch, tmp_path):
    """Start from an environment with no TUBELY_ variables, inside ``tmp_path``."""
    saved = dict(os.environ)
    for key in [key for key in os.environ if key.startswith("TUBELY_")]:
        del os.environ[key]
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path
    # load_dotenv writes straight into os.environ.
    os.environ.clear()
    os.environ.update(saved)
    get_settings.cache_clear()


def _boot(root: Path, *, environment: str, runner: FakeRunner | None = None) -> TestClient:
    (root / ".env").write_text(
        "\n".join(
            [
                f"TUBELY_ENV={environment}",
                f"TUBELY_JWT_SECRET={DEV_SECRET}",
                "TUBELY_DB_URL=sqlite+aiosqlite:///./tubely.db",
                "TUBELY_STAGING_DIR=staging",
                "TUBELY_PUBLIC_BASE_URL=http://testserver",
            ]
        )
    )
    settings = get_settings()

    async def _create_tables() -> None:
        engine = create_engine(settings)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(_create_tables())
    app = create_app()
    if runner is not None:
        app.state.tool_runner = runner
    return TestClient(app)


def _mint(client: TestClient, user_id: str, scopes: list[str] | None = None):
    return client.post("/v1/admin/dev-token", json={"user_id": user_id, "scopes": scopes or []})


def test_dev_token_subject_is_the_user_id(dotenv_only):
    with _boot(dotenv_only, environment="development") as client:
        response = _mint(client, "user-7", ["admin"])
    assert response.status_code == 200
    claims = jwt.decode(response.json()["token"], DEV_SECRET, algorithms=["HS256"])
    assert claims["sub"] == "user-7"
    assert claims["scopes"] == ["admin"]
    assert claims["exp"] > claims["iat"]


def test_dev_token_refused_in_production(dotenv_only):
    with _boot(dotenv_only, environment="production") as client:
        assert _mint(client, "user-7").status_code == 403


def test_production_refuses_default_secret(dotenv_only):
    os.environ["TUBELY_ENV"] = "production"
    with pytest.raises(ValueError, match="JWT secret"):
        get_settings()


def test_dev_token_can_upload(dotenv_only):
    runner = FakeRunner()
    runner.width, runner.height = 1080, 1920
    with _boot(dotenv_only, environment="development", runner=runner) as client:
        headers = {"Authorization": f"Bearer {_mint(client, 'user-dev').json()['token']}"}
        video = client.post("/v1/videos", json={"title": "Vertical"}, headers=headers).json()
        response = client.post(
            f"/v1/video_upload/{video['id']}",
            files={"video": ("clip.mp4", b"\x00\x00\x00\x18ftypisom", "video/mp4")},
            headers=headers,
        )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["user_id"] == "user-dev"
    assert body["video_url"].startswith("http://testserver/v1/objects/portrait/")
    assert list((dotenv_only / "staging").iterdir()) == []
