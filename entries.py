"""Entry repository.

Every operation is scoped to the authenticated owner. An entry owned by
someone else is reported exactly like a missing one.
"""
import logging
import re
from collections.abc import Mapping
from typing import Optional

from errors import NotFoundError, ValidationError
from models import Category, Entry, Link, Video, atomic, parse_id, utcnow

log = logging.getLogger(__name__)

YOUTUBE_ID_LENGTH = 11

_YOUTUBE_URL_RE = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")


# =====================================================
# HELPERS
# =====================================================
def normalize_youtube_id(value: Optional[str]) -> str:
    """Turn a YouTube URL or bare video id into the 11-character id.

    URLs that don't yield a full-length id give ``""``. Anything that
    doesn't look like a YouTube URL is taken to be the id already.
    """
    if not value:
        return ""
    value = value.strip()
    if "youtube.com" not in value and "youtu.be" not in value:
        return value

    match = _YOUTUBE_URL_RE.match(value)
    if match and len(match.group(2)) == YOUTUBE_ID_LENGTH:
        return match.group(2)
    return ""


def _require_text(value, field):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value


def _items(values, kind):
    if values is None:
        return []
    if isinstance(values, (str, bytes, Mapping)) or not hasattr(values, "__iter__"):
        raise ValidationError(f"{kind} must be a list")
    items = list(values)
    for item in items:
        if not isinstance(item, Mapping):
            raise ValidationError(f"Each item in {kind} must be an object")
    return items


def _text_field(item, key, kind):
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} in {kind} must be a string")
    return value


def _build_links(links):
    return [
        Link(title=_text_field(item, "title", "links"), url=_text_field(item, "url", "links"))
        for item in _items(links, "links")
    ]


def _build_videos(videos):
    built = []
    for item in _items(videos, "videos"):
        key = "youtubeId" if "youtubeId" in item else "youtube_id"
        raw = _text_field(item, key, "videos")
        built.append(Video(title=_text_field(item, "title", "videos"), youtube_id=normalize_youtube_id(raw)))
    return built


def _resolve_categories(category_ids):
    """Load the categories for ``category_ids``, dropping ids that don't resolve."""
    if category_ids is None:
        return []
    if isinstance(category_ids, (str, bytes, Mapping)) or not hasattr(category_ids, "__iter__"):
        raise ValidationError("categoryIds must be a list")

    wanted = []
    for raw in category_ids:
        pk = parse_id(raw)
        if pk is None:
            log.warning("Ignoring malformed category id %r", raw)
        elif pk not in wanted:
            wanted.append(pk)

    if not wanted:
        return []

    found = Category.query.filter(Category.id.in_(wanted)).all()
    missing = set(wanted) - {category.id for category in found}
    for pk in sorted(missing):
        log.warning("Ignoring unknown category id %s", pk)
    return found


def _owned_entry_query(owner_id, entry_id):
    entry_pk = parse_id(entry_id)
    if entry_pk is None:
        return None
    return Entry.query.filter_by(id=entry_pk, user_id=owner_id)


# =====================================================
# REPOSITORY OPERATIONS
# =====================================================
def list_entries(owner_id):
    return (
        Entry.query.filter_by(user_id=owner_id)
        .order_by(Entry.updated_at.desc(), Entry.id.desc())
        .all()
    )


def get_entry(owner_id, entry_id):
    query = _owned_entry_query(owner_id, entry_id)
    entry = query.first() if query is not None else None
    if entry is None:
        raise NotFoundError("Entry not found")
    return entry


def create_entry(owner_id, title, content, links=None, videos=None, category_ids=None):
    title = _require_text(title, "Title")
    content = _require_text(content, "Content")

    now = utcnow()
    entry = Entry(
        title=title,
        content=content,
        user_id=owner_id,
        created_at=now,
        updated_at=now,
        links=_build_links(links),
        videos=_build_videos(videos),
        categories=_resolve_categories(category_ids),
    )

    with atomic() as session:
        session.add(entry)

    log.info("User %s created entry %s", owner_id, entry.id)
    return entry


def update_entry(owner_id, entry_id, title, content, links=None, videos=None, category_ids=None):
    """Replace an entry's text, links, videos and categories in one go.

    Links and videos are not merged: whatever is passed becomes the whole
    collection, so omitting them clears them.
    """
    title = _require_text(title, "Title")
    content = _require_text(content, "Content")
    new_links = _build_links(links)
    new_videos = _build_videos(videos)

    with atomic():
        query = _owned_entry_query(owner_id, entry_id)
        entry = query.with_for_update().first() if query is not None else None
        if entry is None:
            raise NotFoundError("Entry not found")

        entry.title = title
        entry.content = content
        # delete-orphan cascade removes the previous rows
        entry.links = new_links
        entry.videos = new_videos
        entry.categories = _resolve_categories(category_ids)
        entry.updated_at = utcnow()

    return entry


def delete_entry(owner_id, entry_id):
    with atomic() as session:
        query = _owned_entry_query(owner_id, entry_id)
        entry = query.with_for_update().first() if query is not None else None
        if entry is None:
            raise NotFoundError("Entry not found")
        session.delete(entry)

    log.info("User %s deleted entry %s", owner_id, entry_id)
