import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from moge import create_app
from moge.config import TestConfig
from moge.extensions import db
from moge.models import CharacterSetting, DirectParent, User
from moge.services import assist, structure, versions
from moge.services.errors import AssistanceError, InvalidRequestError


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture
def user(app_instance):
    user = User(email="user@example.com", display_name="Test User")
    user.set_password("password123")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def chapter(user):
    db.session.add(CharacterSetting(id=1, owner_id=user.id, name="林舟", background="北境剑客"))
    manuscript = structure.create_manuscript(db.session, user.id, name="长夜", characters=["1"])
    chapter = structure.create_chapter(db.session, user.id, DirectParent(manuscript.id), title="下山")
    versions.save_content(db.session, chapter.id, "少年背剑下山，回望山门。", user.id)
    db.session.commit()
    return chapter


def _login(client, user):
    client.post("/auth/login", json={"email": user.email, "password": "password123"})


class RecordingGenerator:
    def __init__(self, reply="续写的内容"):
        self.reply = reply
        self.calls = []

    def generate_response(self, prompt: str, **kwargs: object) -> str:
        self.calls.append((prompt, kwargs))
        return self.reply


def test_continue_prompt_includes_recent_text_and_settings(monkeypatch, user, chapter):
    generator = RecordingGenerator()
    monkeypatch.setattr(assist, "_get_text_generator", lambda: generator)

    text = assist.continue_chapter(db.session, chapter.id, user.id, custom_prompt="多写对话")

    assert text == "续写的内容"
    prompt, kwargs = generator.calls[0]
    assert "《长夜》" in prompt
    assert "下山" in prompt
    assert "少年背剑下山，回望山门。" in prompt
    assert "- 林舟: 北境剑客" in prompt
    assert "多写对话" in prompt
    assert kwargs["system_prompt"]
    assert kwargs["max_new_tokens"] == 2000


def test_continue_uses_only_the_tail_of_long_chapters(monkeypatch, app_instance, user, chapter):
    app_instance.config["ASSIST_CONTEXT_CHARS"] = 4
    generator = RecordingGenerator()
    monkeypatch.setattr(assist, "_get_text_generator", lambda: generator)

    assist.continue_chapter(db.session, chapter.id, user.id)

    prompt, _ = generator.calls[0]
    assert "回望山门。" not in prompt
    assert "望山门。" in prompt


def test_polish_and_expand_require_a_passage(monkeypatch, user, chapter):
    generator = RecordingGenerator("润色后的段落")
    monkeypatch.setattr(assist, "_get_text_generator", lambda: generator)

    with pytest.raises(InvalidRequestError):
        assist.polish_text(db.session, chapter.id, user.id, "   ")

    assert assist.polish_text(db.session, chapter.id, user.id, "原始段落") == "润色后的段落"
    assert assist.expand_text(db.session, chapter.id, user.id, "原始段落") == "润色后的段落"
    assert all("原始段落" in prompt for prompt, _ in generator.calls)


def test_generator_failure_becomes_generic_assistance_error(monkeypatch, user, chapter):
    class FailingGenerator:
        def generate_response(self, prompt: str, **_: object) -> str:
            raise RuntimeError("upstream timeout with secret details")

    monkeypatch.setattr(assist, "_get_text_generator", lambda: FailingGenerator())

    with pytest.raises(AssistanceError) as excinfo:
        assist.continue_chapter(db.session, chapter.id, user.id)

    assert "secret" not in str(excinfo.value)
    assert str(excinfo.value) == AssistanceError.default_message


def test_empty_generation_is_rejected(monkeypatch, user, chapter):
    monkeypatch.setattr(assist, "_get_text_generator", lambda: RecordingGenerator("   "))

    with pytest.raises(AssistanceError):
        assist.expand_text(db.session, chapter.id, user.id, "原始段落")


def test_missing_generator_is_reported_as_unavailable(client, user, chapter):
    _login(client, user)

    response = client.post(f"/manuscripts/chapters/{chapter.id}/ai/continue", json={})

    assert response.status_code == 503
    assert response.get_json() == {"error": AssistanceError.default_message}


def test_ai_routes_return_generated_text(monkeypatch, client, user, chapter):
    monkeypatch.setattr(assist, "_get_text_generator", lambda: RecordingGenerator("扩写结果"))
    _login(client, user)

    response = client.post(
        f"/manuscripts/chapters/{chapter.id}/ai/expand",
        json={"text": "原始段落", "custom_prompt": "加入环境描写"},
    )

    assert response.status_code == 200
    assert response.get_json() == {"text": "扩写结果"}
    assert client.post(f"/manuscripts/chapters/{chapter.id}/ai/polish", json={}).status_code == 400
