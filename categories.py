"""Global category taxonomy.

Categories form a forest through ``parent_id``. They are shared by all
users; entries reference them by id.
"""
import logging

from errors import ConflictError, NotFoundError, ValidationError
from models import Category, atomic, db, parse_id

log = logging.getLogger(__name__)


def _clean_name(name):
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Category name is required")
    return name.strip()


def get_category(category_id):
    category_pk = parse_id(category_id)
    category = db.session.get(Category, category_pk) if category_pk is not None else None
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _resolve_parent(parent_id):
    if parent_id is None or parent_id == "":
        return None
    try:
        return get_category(parent_id)
    except NotFoundError:
        raise NotFoundError("Parent category not found") from None


def _check_no_cycle(category, parent):
    # walk up from the proposed parent; reaching ``category`` means a loop
    seen = set()
    node = parent
    while node is not None and node.id not in seen:
        if node.id == category.id:
            raise ValidationError("A category cannot be moved under itself or its subcategories")
        seen.add(node.id)
        node = node.parent


def list_categories():
    return Category.query.order_by(Category.name.asc(), Category.id.asc()).all()


def create_category(name, parent_id=None):
    name = _clean_name(name)
    parent = _resolve_parent(parent_id)

    category = Category(name=name, parent=parent)
    with atomic() as session:
        session.add(category)

    log.info("Created category %r (id=%s)", category.name, category.id)
    return category


def update_category(category_id, name, parent_id=None):
    category = get_category(category_id)
    name = _clean_name(name)
    parent = _resolve_parent(parent_id)
    if parent is not None:
        _check_no_cycle(category, parent)

    with atomic():
        category.name = name
        category.parent = parent

    return category


def delete_category(category_id):
    category = get_category(category_id)

    if category.children:
        log.warning("Refused to delete category %s: it has subcategories", category.id)
        raise ConflictError("Cannot delete category with subcategories")

    with atomic() as session:
        # association rows go with it, so entries simply lose the category
        session.delete(category)

    log.info("Deleted category %s", category_id)
