import os

import click
from flask import Flask, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from consign.errors import ConsignError
from consign.extensions import db, migrate, cors
from consign.integrations.payments.factory import init_payments, payment_health
from consign.models import User
from consign.segments.segment_09_users_auth_routes import auth_bp
from consign.segments.segment_orders_api import orders_bp
from consign.segments.segment_logistics import logistics_bp
from consign.segments.segment_escrow_admin import escrow_admin_bp
from consign.utils.observability import get_request_id, init_sentry, install_request_observers


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except ValueError:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _error_payload(payload: dict) -> dict:
    rid = (get_request_id() or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app(test_config=None):
    app = Flask(__name__)

    env = (os.getenv("CONSIGN_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        os.makedirs(app.instance_path, exist_ok=True)
        database_url = "sqlite:///" + os.path.join(app.instance_path, "consign.db").replace(os.sep, "/")

    app.config.update(
        CONSIGN_ENV=env,
        SECRET_KEY=os.getenv("SECRET_KEY", "dev-secret"),
        SQLALCHEMY_DATABASE_URI=database_url,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        PAYMENTS_PROVIDER=(os.getenv("PAYMENTS_PROVIDER") or "mock").strip().lower(),
        PAYSTACK_SECRET_KEY=(os.getenv("PAYSTACK_SECRET_KEY") or "").strip(),
        SHIPPING_FEE_MINOR=_env_int("SHIPPING_FEE_MINOR", 3000000, minimum=0, maximum=10**12),
        DISPUTE_WINDOW_DAYS=_env_int("DISPUTE_WINDOW_DAYS", 7, minimum=0, maximum=365),
        AWAITING_RELEASE_MAX_PAGE_SIZE=_env_int("AWAITING_RELEASE_MAX_PAGE_SIZE", 100, minimum=1, maximum=1000),
        SENTRY_DSN=(os.getenv("SENTRY_DSN") or "").strip(),
        SENTRY_TRACES_SAMPLE_RATE=(os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip(),
    )
    if test_config:
        app.config.update(test_config)

    engine_options = {"pool_pre_ping": True}
    if not str(app.config["SQLALCHEMY_DATABASE_URI"]).startswith("sqlite://"):
        engine_options.update(
            {
                "pool_reset_on_return": "rollback",
                "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options)

    init_sentry(app)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_payments(app)
    install_request_observers(app)

    @app.errorhandler(ConsignError)
    def _api_domain_error(error: ConsignError):
        level = app.logger.error if error.status >= 500 else app.logger.warning
        level("domain_error code=%s status=%s path=%s message=%s", error.code, error.status, request.path, error.message)
        return jsonify(_error_payload(error.to_dict())), int(error.status)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        return jsonify(_error_payload(payload)), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        return jsonify(_error_payload(payload)), 500

    # Register API routes
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(logistics_bp)
    app.register_blueprint(escrow_admin_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "consign",
            "env": env,
            "db": db_state,
            "payments": payment_health(app.config),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.teardown_request
    def _rollback_failed_request(exc):
        if exc is not None:
            db.session.rollback()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
        if env not in ("dev", "development", "local", "test") and not allow:
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or CONSIGN_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        if u:
            u.set_password(password)
            u.role = "admin"
        else:
            u = User(name=email.split("@")[0], email=email, role="admin")
            u.set_password(password)
            db.session.add(u)
        db.session.commit()
        click.echo(f"admin_bootstrap_ok {u.email}")

    return app
