import os

from flask import Flask, session
from supabase import create_client

from .auth.routes import auth_bp
from .main.routes import main_bp
from .roles import Role


def create_app():
    app = Flask(
        __name__,
        template_folder="../templates",
        static_folder="../static",
    )
    app.secret_key = os.environ["SECRET_KEY"]

    supabase = create_client(
        os.environ["SUPABASE_URL"],
        os.environ["SUPABASE_SERVICE_KEY"],
    )
    app.config["SUPABASE"] = supabase
    app.config["SUPABASE_URL"] = os.environ["SUPABASE_URL"]
    app.config["LOCAL_TIMEZONE"] = os.environ.get("LOCAL_TIMEZONE") or "Europe/Oslo"
    if os.environ.get("WKHTMLTOPDF_CMD"):
        app.config["WKHTMLTOPDF_CMD"] = os.environ["WKHTMLTOPDF_CMD"]

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)

    @app.context_processor
    def inject_user_context():
        user_id = session.get("user_id")
        role = Role.parse(session.get("role"), user_id) if user_id else None
        return {
            "username": session.get("username"),
            "user_id": user_id,
            "user_role": role.value if role else None,
            "refresh_seconds": role.refresh_seconds if role else None,
        }

    return app
