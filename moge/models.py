from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db, login_manager


MANUSCRIPT_STATUSES = ("DRAFT", "IN_PROGRESS", "COMPLETED", "PUBLISHED", "ABANDONED")

CHAPTER_DRAFT = "DRAFT"
CHAPTER_PUBLISHED = "PUBLISHED"

SORT_KEY_TYPE = db.Numeric(precision=20, scale=6, asdecimal=True)


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self) -> str:  # pragma: no cover - repr for debugging
        return f"<User {self.email}>"


@login_manager.user_loader
def load_user(user_id: str) -> Optional["User"]:
    return db.session.get(User, int(user_id))


class LoreListsMixin:
    """Four weak, string-typed references to lore entities."""

    characters = db.Column(db.JSON, nullable=False, default=list)
    systems = db.Column(db.JSON, nullable=False, default=list)
    worlds = db.Column(db.JSON, nullable=False, default=list)
    misc = db.Column(db.JSON, nullable=False, default=list)


class Project(LoreListsMixin, db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Project {self.name}>"


class Outline(LoreListsMixin, db.Model):
    __tablename__ = "outlines"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    volumes = db.relationship(
        "OutlineVolume",
        back_populates="outline",
        cascade="all, delete-orphan",
        order_by="OutlineVolume.sort_key",
    )
    chapters = db.relationship(
        "OutlineChapter",
        back_populates="outline",
        cascade="all, delete",
        order_by="OutlineChapter.sort_key",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Outline {self.name}>"


class OutlineVolume(db.Model):
    __tablename__ = "outline_volumes"

    id = db.Column(db.Integer, primary_key=True)
    outline_id = db.Column(db.Integer, db.ForeignKey("outlines.id"), nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sort_key = db.Column(SORT_KEY_TYPE, nullable=False)

    outline = db.relationship("Outline", back_populates="volumes")
    chapters = db.relationship(
        "OutlineChapter",
        back_populates="volume",
        cascade="all, delete",
        order_by="OutlineChapter.sort_key",
    )


class OutlineChapter(db.Model):
    __tablename__ = "outline_chapters"

    id = db.Column(db.Integer, primary_key=True)
    outline_id = db.Column(db.Integer, db.ForeignKey("outlines.id"), nullable=True, index=True)
    volume_id = db.Column(db.Integer, db.ForeignKey("outline_volumes.id"), nullable=True, index=True)
    title = db.Column(db.String(150), nullable=False)
    sort_key = db.Column(SORT_KEY_TYPE, nullable=False)

    outline = db.relationship("Outline", back_populates="chapters")
    volume = db.relationship("OutlineVolume", back_populates="chapters")


class Manuscript(LoreListsMixin, db.Model):
    __tablename__ = "manuscripts"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(50), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    outline_id = db.Column(db.Integer, db.ForeignKey("outlines.id"), nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True)
    total_words = db.Column(db.Integer, nullable=False, default=0)
    published_words = db.Column(db.Integer, nullable=False, default=0)
    target_words = db.Column(db.Integer, nullable=True)
    last_edited_chapter_id = db.Column(db.Integer, nullable=True)
    last_edited_at = db.Column(db.DateTime, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    outline = db.relationship("Outline")
    project = db.relationship("Project")
    volumes = db.relationship(
        "Volume",
        back_populates="manuscript",
        cascade="all, delete-orphan",
        order_by="Volume.sort_key",
    )
    chapters = db.relationship(
        "Chapter",
        back_populates="manuscript",
        cascade="all, delete",
        order_by="Chapter.sort_key",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Manuscript {self.name} ({self.status})>"


class Volume(db.Model):
    __tablename__ = "volumes"

    id = db.Column(db.Integer, primary_key=True)
    manuscript_id = db.Column(db.Integer, db.ForeignKey("manuscripts.id"), nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sort_key = db.Column(SORT_KEY_TYPE, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    manuscript = db.relationship("Manuscript", back_populates="volumes")
    chapters = db.relationship(
        "Chapter",
        back_populates="volume",
        cascade="all, delete",
        order_by="Chapter.sort_key",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Volume {self.title} (manuscript {self.manuscript_id})>"


@dataclass(frozen=True)
class DirectParent:
    """A chapter attached straight to a manuscript."""

    manuscript_id: int


@dataclass(frozen=True)
class VolumeParent:
    """A chapter nested under a volume."""

    volume_id: int


ChapterParent = Union[DirectParent, VolumeParent]


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.Integer, primary_key=True)
    manuscript_id = db.Column(db.Integer, db.ForeignKey("manuscripts.id"), nullable=True, index=True)
    volume_id = db.Column(db.Integer, db.ForeignKey("volumes.id"), nullable=True, index=True)
    title = db.Column(db.String(150), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=CHAPTER_DRAFT)
    word_count = db.Column(db.Integer, nullable=False, default=0)
    sort_key = db.Column(SORT_KEY_TYPE, nullable=False)
    published_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    manuscript = db.relationship("Manuscript", back_populates="chapters")
    volume = db.relationship("Volume", back_populates="chapters")
    content = db.relationship(
        "ChapterContent",
        back_populates="chapter",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.CheckConstraint(
            "(manuscript_id IS NULL) <> (volume_id IS NULL)",
            name="ck_chapters_single_parent",
        ),
    )

    @property
    def parent(self) -> ChapterParent:
        if self.volume_id is not None:
            return VolumeParent(self.volume_id)
        return DirectParent(self.manuscript_id)

    @property
    def owning_manuscript(self) -> Optional["Manuscript"]:
        if self.volume is not None:
            return self.volume.manuscript
        return self.manuscript

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Chapter {self.title} ({self.status})>"


class ChapterContent(db.Model):
    __tablename__ = "chapter_contents"

    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapters.id"), nullable=False, unique=True)
    body = db.Column(db.Text, nullable=False, default="")
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    chapter = db.relationship("Chapter", back_populates="content")
    versions = db.relationship(
        "ChapterContentVersion",
        back_populates="content",
        cascade="all, delete-orphan",
        order_by="ChapterContentVersion.version",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ChapterContent chapter={self.chapter_id} v{self.version}>"


class ChapterContentVersion(db.Model):
    __tablename__ = "chapter_content_versions"

    id = db.Column(db.Integer, primary_key=True)
    content_id = db.Column(db.Integer, db.ForeignKey("chapter_contents.id"), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    content = db.relationship("ChapterContent", back_populates="versions")

    __table_args__ = (
        db.UniqueConstraint("content_id", "version", name="uq_chapter_content_versions_version"),
    )


class CharacterSetting(db.Model):
    __tablename__ = "character_settings"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    age = db.Column(db.String(20), nullable=True)
    personality = db.Column(db.Text, nullable=True)
    background = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def summary(self) -> str:
        return (self.background or "").strip()


class SystemSetting(db.Model):
    __tablename__ = "system_settings"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def summary(self) -> str:
        return (self.description or "").strip()


class WorldSetting(db.Model):
    __tablename__ = "world_settings"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    era = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def summary(self) -> str:
        return (self.description or "").strip()


class MiscSetting(db.Model):
    __tablename__ = "misc_settings"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def summary(self) -> str:
        return (self.description or "").strip()
