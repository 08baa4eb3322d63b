import os
import json
import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()

_startup_errors = []


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)

    # Register models with the metadata before create_all()
    from cor_audit import models  # noqa: F401
    from cor_audit.cor_elements import DEFAULT_CATALOG

    @app.route("/health")
    def health():
        """Health check: database connectivity and catalog size."""
        db_url = app.config["SQLALCHEMY_DATABASE_URI"]
        db_type = db_url.split("://")[0] if "://" in db_url else "sqlite"

        db_ok = False
        db_error = None
        tables = []
        try:
            from sqlalchemy import inspect, text
            db.session.execute(text("SELECT 1"))
            db_ok = True
            tables = inspect(db.engine).get_table_names()
        except Exception as e:
            db_error = str(e)

        return json.dumps({
            "status": "ok" if db_ok else "db_error",
            "database_type": db_type,
            "database_connected": db_ok,
            "database_error": db_error,
            "tables": tables,
            "elements": len(DEFAULT_CATALOG),
            "requirements": sum(len(e.requirements) for e in DEFAULT_CATALOG),
            "startup_errors": _startup_errors,
        }), 200, {"Content-Type": "application/json"}

    with app.app_context():
        try:
            db.create_all()
            logger.info("Database tables created/verified.")
        except Exception as e:
            msg = f"db.create_all() failed: {e}"
            logger.error(msg)
            _startup_errors.append(msg)

    return app
