# ==============================
# IMPORTS
# ==============================
import logging
import os
import sys
from functools import wraps

import click
from flask import Blueprint, Flask, g, jsonify, request, session
from flask.cli import with_appcontext
from flask_migrate import Migrate
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from categories import create_category, delete_category, list_categories, update_category
from credentials import UserIdentity, create_user, get_user, verify_credentials
from entries import create_entry, delete_entry, get_entry, list_entries, update_entry
from errors import InternalError, KnowledgeError, Unauthenticated, ValidationError
from models import db
from search import filter_entries

log = logging.getLogger(__name__)

migrate = Migrate()
api = Blueprint("api", __name__, url_prefix="/api")


# ==============================
# LOGGING
# ==============================
def configure_logging(level_name="INFO"):
    """Attach one stderr handler to the root logger. Later calls only adjust the level."""
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # SQL echo is controlled by SQLALCHEMY_ECHO, not the app log level
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    if any(getattr(h, "_knowledge_handler", False) for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    handler._knowledge_handler = True
    root_logger.addHandler(handler)


# ==============================
# APP CONFIGURATION
# ==============================
def _database_url():
    database_url = os.environ.get("DATABASE_URL")
    if database_url and database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url or "sqlite:///knowledge.db"


def create_app(test_config=None):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_DATABASE_URI"] = _database_url()
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["DATABASE_TIMEOUT"] = float(os.environ.get("DATABASE_TIMEOUT", "15"))
    app.config["LOG_LEVEL"] = os.environ.get("KNOWLEDGE_LOG_LEVEL", "INFO")

    if test_config:
        app.config.update(test_config)

    # a locked sqlite database should fail after the timeout, not hang
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        engine_options.setdefault("connect_args", {"timeout": app.config["DATABASE_TIMEOUT"]})

    configure_logging(app.config["LOG_LEVEL"])

    # ==============================
    # EXTENSIONS INITIALIZATION
    # ==============================
    db.init_app(app)
    migrate.init_app(app, db)

    app.register_blueprint(api)
    app.register_error_handler(KnowledgeError, handle_knowledge_error)
    app.register_error_handler(OperationalError, handle_database_unavailable)
    app.register_error_handler(Exception, handle_unexpected_error)
    app.cli.add_command(create_user_command)
    app.cli.add_command(init_db_command)

    return app


# =====================================================
# ERROR HANDLERS
# =====================================================
def handle_knowledge_error(exc):
    if exc.status_code >= 500:
        log.error("%s: %s", type(exc).__name__, exc.message, exc_info=exc.__cause__ or exc)
    return jsonify({"error": exc.message}), exc.status_code


def handle_database_unavailable(exc):
    # reads run outside atomic(), so a dropped connection lands here
    db.session.rollback()
    error = InternalError("Database temporarily unavailable", retryable=True)
    error.__cause__ = exc
    return handle_knowledge_error(error)


def handle_unexpected_error(exc):
    if isinstance(exc, HTTPException):
        return jsonify({"error": exc.description}), exc.code
    log.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "Internal server error"}), 500


# =====================================================
# HELPERS
# =====================================================
def login_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_user(session.get("user_id"))
        if user is None:
            session.clear()
            raise Unauthenticated("Unauthorized")
        g.identity = UserIdentity(user.id, user.username)
        return func(*args, **kwargs)
    return wrapper


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_owner_id():
    return g.identity.id


# =====================================================
# SETUP & AUTH ROUTES
# =====================================================
@api.route("/setup", methods=["POST"])
def setup():
    data = json_body()
    user = create_user(data.get("username"), data.get("password"))
    return jsonify({"message": "User created successfully", "username": user.username}), 201


@api.route("/login", methods=["POST"])
def login():
    data = json_body()
    identity = verify_credentials(data.get("username"), data.get("password"))
    if identity is None:
        log.warning("Failed login for username %r", data.get("username"))
        raise Unauthenticated("Invalid credentials")

    session.clear()
    session["user_id"] = identity.id
    session["username"] = identity.username
    return jsonify(identity._asdict())


@api.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"message": "Logged out successfully"})


@api.route("/me")
@login_required
def me():
    return jsonify(g.identity._asdict())


# =====================================================
# CATEGORY ROUTES
# =====================================================
@api.route("/categories", methods=["GET"])
@login_required
def categories_index():
    return jsonify([category.to_dict() for category in list_categories()])


@api.route("/categories", methods=["POST"])
@login_required
def categories_create():
    data = json_body()
    category = create_category(data.get("name"), data.get("parentId"))
    return jsonify(category.to_dict()), 201


@api.route("/categories/<int:category_id>", methods=["PUT"])
@login_required
def categories_update(category_id):
    data = json_body()
    category = update_category(category_id, data.get("name"), data.get("parentId"))
    return jsonify(category.to_dict())


@api.route("/categories/<int:category_id>", methods=["DELETE"])
@login_required
def categories_delete(category_id):
    delete_category(category_id)
    return jsonify({"message": "Category deleted successfully"})


# =====================================================
# ENTRY ROUTES
# =====================================================
@api.route("/entries", methods=["GET"])
@login_required
def entries_index():
    q = request.args.get("q", "").strip()
    category_id = request.args.get("category") or None
    entries = filter_entries(list_entries(current_owner_id()), q, category_id)
    return jsonify([entry.to_dict() for entry in entries])


@api.route("/entries", methods=["POST"])
@login_required
def entries_create():
    data = json_body()
    entry = create_entry(
        current_owner_id(),
        data.get("title"),
        data.get("content"),
        links=data.get("links"),
        videos=data.get("videos"),
        category_ids=data.get("categoryIds"),
    )
    return jsonify(entry.to_dict()), 201


@api.route("/entries/<int:entry_id>", methods=["GET"])
@login_required
def entries_show(entry_id):
    return jsonify(get_entry(current_owner_id(), entry_id).to_dict())


@api.route("/entries/<int:entry_id>", methods=["PUT"])
@login_required
def entries_update(entry_id):
    data = json_body()
    entry = update_entry(
        current_owner_id(),
        entry_id,
        data.get("title"),
        data.get("content"),
        links=data.get("links"),
        videos=data.get("videos"),
        category_ids=data.get("categoryIds"),
    )
    return jsonify(entry.to_dict())


@api.route("/entries/<int:entry_id>", methods=["DELETE"])
@login_required
def entries_delete(entry_id):
    delete_entry(current_owner_id(), entry_id)
    return jsonify({"message": "Entry deleted successfully"})


# =====================================================
# CLI COMMANDS
# =====================================================
@click.command("create-user")
@click.option("--username", prompt="Enter your username")
@click.option("--password", prompt="Enter your password", hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_command(username, password):
    """Create a user who can log in to the library."""
    try:
        user = create_user(username, password)
    except KnowledgeError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"User created successfully: {user.username}")


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create any missing tables (development only; use `flask db upgrade` otherwise)."""
    db.create_all()
    click.echo("Database tables created.")


# =====================================================
# RUN APP
# =====================================================
if __name__ == "__main__":
    create_app().run(debug=True)
