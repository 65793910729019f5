import logging
from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import ConflictError, ValidationError
from models import User, atomic, db

log = logging.getLogger(__name__)


class UserIdentity(NamedTuple):
    id: int
    username: str


def create_user(username: str, password: str) -> User:
    if not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError("Username and password are required")
    if not username.strip() or not password:
        raise ValidationError("Username and password are required")

    if User.query.filter_by(username=username).first():
        raise ConflictError("User already exists")

    user = User(username=username, password=generate_password_hash(password))
    with atomic() as session:
        session.add(user)
        try:
            session.flush()
        except IntegrityError:
            # a concurrent request inserted the same username first
            raise ConflictError("User already exists") from None

    log.info("Created user %s", user.username)
    return user


def verify_credentials(username: str, password: str) -> Optional[UserIdentity]:
    """Return the identity for a matching username/password pair.

    Unknown users and wrong passwords both give ``None`` so callers
    cannot tell them apart.
    """
    if not isinstance(username, str) or not isinstance(password, str):
        return None
    if not username or not password:
        return None

    user = User.query.filter_by(username=username).first()
    if user is None:
        return None

    if not check_password_hash(user.password, password):
        return None

    return UserIdentity(user.id, user.username)


def get_user(user_id) -> Optional[User]:
    if user_id is None:
        return None
    return db.session.get(User, user_id)
