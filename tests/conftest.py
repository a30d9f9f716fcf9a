"""
Shared fixtures: an in-memory database, fake providers and an API client.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_INIT_DB"] = "false"
os.environ["ADMIN_API_KEY"] = "test-admin-key"

import pytest
from fastapi.testclient import TestClient

from lurkingpods.api import auth as api_auth
from lurkingpods.api.app import app
from lurkingpods.api.dependencies import get_audio_synthesizer, get_script_generator, get_storage
from lurkingpods.content_generator import Script
from lurkingpods.database import DatabaseManager
from lurkingpods.orchestrator import ContentGenerationOrchestrator
from lurkingpods.repository import CategoryRepository, JobRepository, PodcastRepository

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}

SCRIPT_CONTENT = (
    "Speaker 1: Welcome back! Today we are looking at the gadgets everyone is talking about.\n"
    "Speaker 2: And the software updates that quietly changed how we use them every day."
)


def make_script(**overrides) -> Script:
    values = {
        "title": "Tech Today",
        "description": "A quick look at the week in technology",
        "content": SCRIPT_CONTENT,
        "duration": 60,
        "speaker_1_voice_id": "v1",
        "speaker_2_voice_id": "v2",
        "quality_score": 0.9,
    }
    values.update(overrides)
    return Script(**values)


class FakeScriptGenerator:
    """Returns scripts or raises errors from a queue, one per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [make_script()]
        self.calls = []

    def generate(self, category_name, language):
        self.calls.append((category_name, language))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeAudioSynthesizer:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def synthesize(self, content, language, speaker_1_voice_id, speaker_2_voice_id):
        self.calls.append((content, language, speaker_1_voice_id, speaker_2_voice_id))
        if self.error is not None:
            raise self.error
        return b"ID3-fake-mp3"


class FakeStorage:
    def __init__(self, error=None):
        self.objects = {}
        self.deleted = []
        self.error = error

    def upload(self, data, object_name, content_type="audio/mpeg"):
        if self.error is not None:
            raise self.error
        self.objects[object_name] = (data, content_type)
        return f"https://cdn.test/{object_name}"

    def delete_file(self, object_name):
        self.deleted.append(object_name)
        return True

    def health_check(self):
        return True


@pytest.fixture(autouse=True)
def database():
    DatabaseManager.create_tables()
    yield
    DatabaseManager.drop_tables()


@pytest.fixture
def category():
    return CategoryRepository().create(
        id="c1",
        name="technology",
        display_name_en="Technology",
        display_name_tr="Teknoloji",
        description_en="Gadgets and software",
        description_tr="Cihazlar ve yazılımlar",
        color_hex="#3366FF",
        sort_order=1,
    )


@pytest.fixture
def script_generator():
    return FakeScriptGenerator()


@pytest.fixture
def audio_synthesizer():
    return FakeAudioSynthesizer()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def orchestrator(script_generator, audio_synthesizer, storage):
    return ContentGenerationOrchestrator(
        jobs=JobRepository(),
        podcasts=PodcastRepository(),
        categories=CategoryRepository(),
        script_generator=script_generator,
        audio_synthesizer=audio_synthesizer,
        storage=storage,
    )


async def _no_rate_limit():
    return None


@pytest.fixture
def client(script_generator, audio_synthesizer, storage):
    for limit in (
        api_auth.general_limit,
        api_auth.auth_limit,
        api_auth.content_limit,
        api_auth.subscription_limit,
        api_auth.admin_generate_limit,
    ):
        app.dependency_overrides[limit] = _no_rate_limit
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_script_generator] = lambda: script_generator
    app.dependency_overrides[get_audio_synthesizer] = lambda: audio_synthesizer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def registered_user(client):
    response = client.post(
        "/auth/register",
        json={"email": "listener@example.com", "password": "s3cretpass", "language_preference": "en"},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def auth_headers(registered_user):
    return {"Authorization": f"Bearer {registered_user['session']['access_token']}"}
