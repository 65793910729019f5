from models import parse_id


def _matches_text(entry, term):
    return term in entry.title.lower() or term in entry.content.lower()


def _in_category(entry, category_id):
    return any(category.id == category_id for category in entry.categories)


def filter_entries(entries, search_term=None, category_id=None):
    """Narrow an entry listing by text and category.

    An entry is kept when its title or content contains ``search_term``
    (case-insensitive) and it belongs to ``category_id``. Either filter is
    skipped when not given. Order is preserved and nothing is modified.
    """
    term = search_term.lower() if search_term else ""
    category_pk = parse_id(category_id) if category_id not in (None, "") else None

    if category_id not in (None, "") and category_pk is None:
        # a category id that can't exist matches nothing
        return []

    return [
        entry
        for entry in entries
        if (not term or _matches_text(entry, term))
        and (category_pk is None or _in_category(entry, category_pk))
    ]
