import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from moge import create_app
from moge.config import TestConfig
from moge.extensions import db
from moge.models import ChapterContentVersion, DirectParent, User
from moge.services import structure, versions
from moge.services.errors import NotFoundError, VersionConflictError


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
def user(app_instance):
    user = User(email="author@example.com", display_name="Author")
    user.set_password("password123")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def chapter(user):
    manuscript = structure.create_manuscript(db.session, user.id, name="Test")
    chapter = structure.create_chapter(db.session, user.id, DirectParent(manuscript.id), title="Intro")
    db.session.commit()
    return chapter


def test_second_save_archives_previous_body(user, chapter):
    versions.save_content(db.session, chapter.id, "A", user.id)
    content = versions.save_content(db.session, chapter.id, "AB", user.id)
    db.session.commit()

    assert content.version == 2
    assert content.body == "AB"
    history = db.session.execute(db.select(ChapterContentVersion)).scalars().all()
    assert len(history) == 1
    assert (history[0].version, history[0].body) == (1, "A")


def test_first_save_creates_version_one_without_history(user, chapter):
    assert versions.get_content(db.session, chapter.id, user.id) is None

    content = versions.save_content(db.session, chapter.id, "开篇", user.id)
    db.session.commit()

    assert content.version == 1
    assert versions.list_versions(db.session, chapter.id, user.id) == []


def test_history_grows_by_one_per_save(user, chapter):
    bodies = ["一", "一二", "一二三", "一二三四", "一二三四五"]
    for body in bodies:
        versions.save_content(db.session, chapter.id, body, user.id)
    db.session.commit()

    history = versions.list_versions(db.session, chapter.id, user.id)
    assert [entry.version for entry in history] == [4, 3, 2, 1]
    assert [entry.body for entry in history] == ["一二三四", "一二三", "一二", "一"]
    assert chapter.content.version == len(bodies)
    assert chapter.word_count == 5


def test_restore_version_saves_archived_body_as_new_revision(user, chapter):
    versions.save_content(db.session, chapter.id, "初稿", user.id)
    versions.save_content(db.session, chapter.id, "第二稿内容", user.id)
    db.session.commit()

    content = versions.restore_version(db.session, chapter.id, 1, user.id)
    db.session.commit()

    assert content.body == "初稿"
    assert content.version == 3
    assert chapter.word_count == 2
    assert [entry.body for entry in versions.list_versions(db.session, chapter.id, user.id)] == [
        "第二稿内容",
        "初稿",
    ]

    with pytest.raises(NotFoundError):
        versions.restore_version(db.session, chapter.id, 42, user.id)


def test_stale_expected_version_is_rejected(user, chapter):
    versions.save_content(db.session, chapter.id, "A", user.id, expected_version=0)
    versions.save_content(db.session, chapter.id, "AB", user.id, expected_version=1)
    db.session.commit()

    with pytest.raises(VersionConflictError):
        versions.save_content(db.session, chapter.id, "stale", user.id, expected_version=1)

    assert chapter.content.body == "AB"
    assert chapter.content.version == 2


def test_save_without_expected_version_is_last_write_wins(user, chapter):
    versions.save_content(db.session, chapter.id, "A", user.id)
    versions.save_content(db.session, chapter.id, "B", user.id)
    content = versions.save_content(db.session, chapter.id, "C", user.id)

    assert content.body == "C"
    assert content.version == 3
