from contextlib import contextmanager
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from errors import InternalError

db = SQLAlchemy()   # defined ONLY here


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_id(value):
    """Coerce an id from JSON or a query string to int, ``None`` if it isn't one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _iso(value):
    return value.isoformat() if value else None


@contextmanager
def atomic():
    """Run a block of writes as one transaction.

    Commits when the block finishes, rolls back on any failure. Database
    errors surface as ``InternalError``; lock timeouts and dropped
    connections are flagged retryable.
    """
    try:
        yield db.session
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        raise InternalError("Database temporarily unavailable", retryable=True) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise InternalError("Database error") from exc
    except Exception:
        db.session.rollback()
        raise


# =====================================================
# USER MODEL
# =====================================================
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.Text, unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    entries = db.relationship("Entry", backref="owner", cascade="all", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.username}>"


# =====================================================
# CATEGORY MODEL (SELF-REFERENCING)
# =====================================================
class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), index=True)
    parent = db.relationship(
        "Category",
        remote_side=[id],
        backref=db.backref("children", order_by="Category.name"),
    )

    def to_summary(self):
        return {"id": self.id, "name": self.name, "parentId": self.parent_id}

    def to_dict(self):
        # one level only: parent and direct children
        data = self.to_summary()
        data["createdAt"] = _iso(self.created_at)
        data["parent"] = self.parent.to_summary() if self.parent else None
        data["children"] = [child.to_summary() for child in self.children]
        return data

    def __repr__(self):
        return f"<Category {self.name}>"


# =====================================================
# ENTRY <-> CATEGORY ASSOCIATION
# =====================================================
entry_categories = db.Table(
    "entry_categories",
    db.Column(
        "entry_id",
        db.Integer,
        db.ForeignKey("entries.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "category_id",
        db.Integer,
        db.ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


# =====================================================
# ENTRY MODEL
# =====================================================
class Entry(db.Model):
    __tablename__ = "entries"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False)
    content = db.Column(db.Text, nullable=False)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    categories = db.relationship(
        "Category",
        secondary=entry_categories,
        order_by="Category.name",
        backref=db.backref("entries", lazy=True),
        lazy="selectin",
    )
    links = db.relationship(
        "Link",
        backref="entry",
        cascade="all, delete-orphan",
        order_by="Link.id",
        lazy="selectin",
    )
    videos = db.relationship(
        "Video",
        backref="entry",
        cascade="all, delete-orphan",
        order_by="Video.id",
        lazy="selectin",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "userId": self.user_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "links": [link.to_dict() for link in self.links],
            "videos": [video.to_dict() for video in self.videos],
            "categories": [category.to_summary() for category in self.categories],
        }

    def __repr__(self):
        return f"<Entry {self.title}>"


# =====================================================
# LINK MODEL
# =====================================================
class Link(db.Model):
    __tablename__ = "links"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False, default="")
    url = db.Column(db.Text, nullable=False)

    entry_id = db.Column(
        db.Integer,
        db.ForeignKey("entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def to_dict(self):
        return {"id": self.id, "title": self.title, "url": self.url}


# =====================================================
# VIDEO MODEL
# =====================================================
class Video(db.Model):
    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False, default="")

    # 11-char youtube id, the raw value for non-youtube input,
    # empty when a youtube url held no valid id
    youtube_id = db.Column(db.Text, nullable=False, default="")

    entry_id = db.Column(
        db.Integer,
        db.ForeignKey("entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def to_dict(self):
        return {"id": self.id, "title": self.title, "youtubeId": self.youtube_id}
