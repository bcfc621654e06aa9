"""
LocalLibrary - a library catalog built with Flask and SQLAlchemy.

Features:
- Authors, genres, books and book copies: list, detail, create, update, delete
- Validated, CSRF-protected HTML forms (WTForms)
- Authors, genres and books that are still referenced cannot be deleted
- Book summaries pre-filled from Open Library by ISBN
"""
import logging
import os
import secrets

import click
from flask import Flask, redirect, render_template, request, url_for
from flask_wtf import CSRFProtect
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .data_models import db
from .repository import Catalog
from .views import catalog_bp

logger = logging.getLogger(__name__)

csrf = CSRFProtect()


def create_app(config=None):
    """
    Application factory.

    Settings are layered: ``Config`` defaults, then ``LOCALLIBRARY_*``
    environment variables, then the ``config`` mapping.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    app.config.from_prefixed_env("LOCALLIBRARY")
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)
        db_path = os.path.join(app.instance_path, "library.sqlite")
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"
    if not app.config["SECRET_KEY"]:
        logger.warning("LOCALLIBRARY_SECRET_KEY is not set; using a random key for this process")
        app.config["SECRET_KEY"] = secrets.token_hex(32)

    db.init_app(app)
    csrf.init_app(app)
    app.extensions["catalog"] = Catalog(db.session)

    app.register_blueprint(catalog_bp)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/")
    def home():
        return redirect(url_for("catalog.index"))

    @app.after_request
    def log_request(response):
        logger.info("%s %s %s", request.method, request.full_path.rstrip("?"), response.status_code)
        return response

    return app


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def http_error(error):
        # Routing redirects are HTTPExceptions too.
        if error.code is None or error.code < 400:
            return error
        return render_template("error.html", title=error.name, error=error), error.code

    @app.errorhandler(SQLAlchemyError)
    def storage_error(error):
        db.session.rollback()
        logger.exception("Storage operation failed")
        return render_template("error.html", title="Error", error=None), 500


def register_commands(app):
    @app.cli.command("init-db")
    @click.option("--drop", is_flag=True, help="Drop existing tables first.")
    def init_db(drop):
        """Create the catalog tables."""
        if drop:
            db.drop_all()
        db.create_all()
        click.echo("Initialized the catalog database.")


def shutdown(app):
    """Release pooled database connections."""
    with app.app_context():
        db.engine.dispose()
    logger.info("Storage connections closed")


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
    try:
        app.run(debug=app.debug)
    finally:
        shutdown(app)


if __name__ == "__main__":
    main()
