import sys
from pathlib import Path
from urllib.parse import unquote

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from moge import create_app
from moge.config import TestConfig
from moge.extensions import db
from moge.models import CharacterSetting, Manuscript, User


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
def other_user(app_instance):
    user = User(email="other@example.com", display_name="Other User")
    user.set_password("password123")
    db.session.add(user)
    db.session.commit()
    return user


def _login(client, user):
    response = client.post("/auth/login", json={"email": user.email, "password": "password123"})
    assert response.status_code == 200


def _create_manuscript(client, **fields):
    payload = {"name": "Test"}
    payload.update(fields)
    response = client.post("/manuscripts", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_requests_without_login_are_rejected(client, user):
    response = client.get("/manuscripts")

    assert response.status_code == 401
    assert response.get_json() == {"error": "Sign in to continue."}


def test_register_login_and_me(client):
    response = client.post(
        "/auth/register",
        json={
            "display_name": "New Writer",
            "email": "New@Example.com",
            "password": "longpassword",
            "confirm_password": "longpassword",
        },
    )
    assert response.status_code == 201
    assert response.get_json()["email"] == "new@example.com"

    bad_login = client.post("/auth/login", json={"email": "new@example.com", "password": "wrong-password"})
    assert bad_login.status_code == 401

    client.post("/auth/login", json={"email": "new@example.com", "password": "longpassword"})
    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.get_json()["display_name"] == "New Writer"


def test_create_manuscript_validates_payload(client, user):
    _login(client, user)

    response = client.post("/manuscripts", json={"description": "no name"})

    assert response.status_code == 400
    assert "name" in response.get_json()["fields"]


def test_non_string_json_values_are_read_as_text(client, user):
    _login(client, user)

    numeric_name = client.post("/manuscripts", json={"name": 123, "description": 4.5, "target_words": "800"})
    assert numeric_name.status_code == 201
    assert numeric_name.get_json()["name"] == "123"
    assert numeric_name.get_json()["description"] == "4.5"
    assert numeric_name.get_json()["target_words"] == 800

    bad_number = client.post("/manuscripts", json={"name": "Test", "target_words": 1.5})
    assert bad_number.status_code == 400
    assert "target_words" in bad_number.get_json()["fields"]

    manuscript_id = numeric_name.get_json()["id"]
    chapter = client.post("/manuscripts/chapters", json={"manuscript_id": manuscript_id, "title": 7})
    assert chapter.status_code == 201
    assert chapter.get_json()["title"] == "7"


def test_login_rejects_non_string_email_with_field_errors(client, user):
    response = client.post("/auth/login", json={"email": 42, "password": "password123", "remember": False})

    assert response.status_code == 400
    assert "email" in response.get_json()["fields"]


def test_manuscript_lifecycle_through_api(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client, tags=["武侠"], characters=["1"])
    assert manuscript["status"] == "DRAFT"
    assert manuscript["tags"] == ["武侠"]

    chapter = client.post("/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": "Intro"})
    assert chapter.status_code == 201
    chapter_id = chapter.get_json()["id"]

    saved = client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "hello world"})
    assert saved.status_code == 200
    assert saved.get_json()["version"] == 1

    tree = client.get(f"/manuscripts/{manuscript['id']}").get_json()
    assert tree["total_words"] == 10
    assert [entry["title"] for entry in tree["chapters"]] == ["Intro"]
    assert tree["chapters"][0]["word_count"] == 10

    updated = client.put(f"/manuscripts/{manuscript['id']}", json={"name": "Renamed", "status": "IN_PROGRESS"})
    assert updated.status_code == 200
    assert updated.get_json()["name"] == "Renamed"

    listed = client.get("/manuscripts").get_json()
    assert [entry["name"] for entry in listed] == ["Renamed"]

    deleted = client.delete(f"/manuscripts/{manuscript['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/manuscripts/{manuscript['id']}").status_code == 404
    assert client.get("/manuscripts").get_json() == []
    assert db.session.get(Manuscript, manuscript["id"]).deleted_at is not None


def test_chapter_requires_exactly_one_parent(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    volume = client.post("/manuscripts/volumes", json={"manuscript_id": manuscript["id"], "title": "卷一"}).get_json()

    neither = client.post("/manuscripts/chapters", json={"title": "Orphan"})
    both = client.post(
        "/manuscripts/chapters",
        json={"manuscript_id": manuscript["id"], "volume_id": volume["id"], "title": "Twice"},
    )
    nested = client.post("/manuscripts/chapters", json={"volume_id": volume["id"], "title": "一", "manuscript_id": None})

    assert neither.status_code == 400
    assert both.status_code == 400
    assert nested.status_code == 201
    assert nested.get_json()["volume_id"] == volume["id"]
    assert nested.get_json()["manuscript_id"] is None


def test_foreign_manuscript_is_forbidden(client, user, other_user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    client.post("/auth/logout")

    _login(client, other_user)
    assert client.get(f"/manuscripts/{manuscript['id']}").status_code == 403
    assert (
        client.post("/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": "x"}).status_code
        == 403
    )
    assert client.get("/manuscripts/9999").status_code == 404


def test_stale_content_save_returns_conflict(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    chapter_id = client.post(
        "/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": "Intro"}
    ).get_json()["id"]

    client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "A"})
    client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "AB", "expected_version": 1})
    conflict = client.put(
        f"/manuscripts/chapters/{chapter_id}/content", json={"content": "stale", "expected_version": 1}
    )

    assert conflict.status_code == 409
    current = client.get(f"/manuscripts/chapters/{chapter_id}/content").get_json()
    assert current["content"] == "AB"
    assert current["version"] == 2

    history = client.get(f"/manuscripts/chapters/{chapter_id}/versions").get_json()
    assert [(entry["version"], entry["content"]) for entry in history] == [(1, "A")]

    restored = client.post(f"/manuscripts/chapters/{chapter_id}/versions/1/restore")
    assert restored.status_code == 200
    assert restored.get_json()["content"] == "A"
    assert restored.get_json()["version"] == 3


def test_publish_and_reorder_endpoints(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    ids = [
        client.post("/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": title}).get_json()["id"]
        for title in ("一", "二", "三")
    ]
    for chapter_id in ids:
        client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "正文"})

    published = client.post(f"/manuscripts/chapters/{ids[0]}/publish").get_json()
    assert published["status"] == "PUBLISHED"
    first_published_at = published["published_at"]

    unpublished = client.post(f"/manuscripts/chapters/{ids[0]}/unpublish").get_json()
    assert unpublished["status"] == "DRAFT"
    assert unpublished["published_at"] == first_published_at

    batch = client.post("/manuscripts/chapters/batch-publish", json={"chapter_ids": ids})
    assert batch.get_json()["count"] == 3
    assert client.get(f"/manuscripts/{manuscript['id']}").get_json()["published_words"] == 6

    partial = client.put("/manuscripts/chapters/reorder", json={"chapter_ids": [ids[2], ids[0]]})
    assert partial.status_code == 400

    reordered = client.put("/manuscripts/chapters/reorder", json={"chapter_ids": [ids[2], ids[0], ids[1]]})
    assert reordered.status_code == 200
    tree = client.get(f"/manuscripts/{manuscript['id']}").get_json()
    assert [entry["title"] for entry in tree["chapters"]] == ["三", "一", "二"]


def test_volume_endpoints(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    first = client.post("/manuscripts/volumes", json={"manuscript_id": manuscript["id"], "title": "卷一"}).get_json()
    second = client.post("/manuscripts/volumes", json={"manuscript_id": manuscript["id"], "title": "卷二"}).get_json()

    renamed = client.put(f"/manuscripts/volumes/{first['id']}", json={"title": "序卷"})
    assert renamed.get_json()["title"] == "序卷"

    client.put("/manuscripts/volumes/reorder", json={"volume_ids": [second["id"], first["id"]]})
    tree = client.get(f"/manuscripts/{manuscript['id']}").get_json()
    assert [volume["title"] for volume in tree["volumes"]] == ["卷二", "序卷"]

    chapter_id = client.post("/manuscripts/chapters", json={"volume_id": second["id"], "title": "一"}).get_json()["id"]
    client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "x" * 30})
    assert client.get(f"/manuscripts/{manuscript['id']}").get_json()["total_words"] == 30

    assert client.delete(f"/manuscripts/volumes/{second['id']}").status_code == 200
    tree = client.get(f"/manuscripts/{manuscript['id']}").get_json()
    assert [volume["title"] for volume in tree["volumes"]] == ["序卷"]
    assert tree["total_words"] == 0


def test_settings_endpoint_returns_entities_and_context(client, user):
    db.session.add(CharacterSetting(id=5, owner_id=user.id, name="林舟", background="北境剑客"))
    db.session.commit()
    _login(client, user)
    manuscript = _create_manuscript(client, characters=["5", "404"])

    response = client.get(f"/manuscripts/{manuscript['id']}/settings")

    assert response.status_code == 200
    payload = response.get_json()
    assert [entity["name"] for entity in payload["characters"]] == ["林舟"]
    assert payload["systems"] == []
    assert payload["context"] == "【角色设定】\n- 林舟: 北境剑客"


def test_settings_library_lists_records_for_reference_lists(client, user, other_user):
    db.session.add_all(
        [
            CharacterSetting(id=5, owner_id=user.id, name="林舟", background="北境剑客"),
            CharacterSetting(id=6, owner_id=other_user.id, name="旁人"),
        ]
    )
    db.session.commit()
    _login(client, user)

    response = client.get("/manuscripts/settings/characters")

    assert response.status_code == 200
    assert response.get_json() == [{"id": 5, "name": "林舟", "type": None, "description": "北境剑客"}]
    assert client.get("/manuscripts/settings/worlds").get_json() == []
    assert client.get("/manuscripts/settings/weapons").status_code == 404


def test_export_downloads(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client, name="长夜")
    chapter_id = client.post(
        "/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": "楔子"}
    ).get_json()["id"]
    client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "**风**起了。"})

    txt = client.get(f"/export/manuscripts/{manuscript['id']}/txt?include_metadata=true")
    assert txt.status_code == 200
    assert txt.mimetype == "text/plain"
    body = txt.get_data(as_text=True)
    assert "【作品信息】" in body
    assert "风起了。" in body
    disposition = txt.headers["Content-Disposition"]
    assert disposition.startswith("attachment; filename*=UTF-8''")
    filename = unquote(disposition.split("''", 1)[1])
    assert filename.startswith("长夜_") and filename.endswith(".txt")

    markdown = client.get(f"/export/manuscripts/{manuscript['id']}/markdown")
    assert markdown.mimetype == "text/markdown"
    assert "# 长夜" in markdown.get_data(as_text=True)

    single = client.get(f"/export/chapters/{chapter_id}/txt")
    assert unquote(single.headers["Content-Disposition"].split("''", 1)[1]).startswith("楔子_")

    batch = client.post("/export/chapters/batch", json={"chapter_ids": [chapter_id, 9999]})
    assert batch.get_json()["count"] == 1
    assert batch.get_json()["chapters"][0]["chapter_id"] == chapter_id


def test_workspace_summary(client, user):
    _login(client, user)
    manuscript = _create_manuscript(client)
    chapter_id = client.post(
        "/manuscripts/chapters", json={"manuscript_id": manuscript["id"], "title": "Intro"}
    ).get_json()["id"]
    client.put(f"/manuscripts/chapters/{chapter_id}/content", json={"content": "**今天**写了"})

    payload = client.get("/workspace").get_json()

    assert payload["stats"]["manuscript_count"] == 1
    assert payload["stats"]["today_words"] == 4
    assert payload["stats"]["total_words"] == 8
    assert [entry["id"] for entry in payload["recent_manuscripts"]] == [manuscript["id"]]
    assert payload["recent_projects"] == []
    assert payload["recent_outlines"] == []
