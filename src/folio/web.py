"""
Web application for Folio.

Provides:
- The public portfolio page, section fragments, the contact form and the CV
- Login / logout backed by server-side sessions
- The admin area: dashboard, profile, generic CRUD sections, messages, settings
- Serving uploaded files from the storage buckets

Security:
- CSRF protection on every POST (Flask-WTF CSRFProtect); JSON uploads send
  the token in the X-CSRFToken header
- Row ownership is enforced by the backend, never by view code
- Host binding safety: refuses non-localhost binds unless explicitly allowed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from flask import (
    Flask,
    Response,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    session,
    url_for,
)
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf

from .aggregation import SECTIONS_BY_NAME, PublicAggregator, group_skills
from .backend import Backend
from .cache import QueryCache
from .config import Config, get_secret_key, load_config
from .cv_document import collect_cv_data, render_cv
from .errors import AuthenticationError, BackendError, NotFoundError, StorageError, ValidationError
from .formatting import register_filters
from .forms import (
    ContactForm,
    LoginForm,
    PasswordForm,
    ProfileForm,
    cleaned_values,
    dialog_for,
)
from .models import db
from .repository import Repositories
from .schemas import PROFILE_SCHEMA
from .sections import EMPTY_MESSAGE, PAGES, SECTIONS, SKELETON_ROWS, SectionLoader, load_section, page_for
from .session import SESSION_TOKEN_KEY, LocalAuthClient, SessionRegistry, requires_login
from .storage import AVATARS_BUCKET, PROJECT_IMAGES_BUCKET, BucketStorage, UploadGate, timestamp_version

logger = logging.getLogger(__name__)

CONTACT_FAILURE_MESSAGE = "Failed to send message. Please try again later."


@dataclass
class Services:
    """Collaborators shared by every request, built once per app."""

    config: Config
    backend: Backend
    repositories: Repositories
    storage: BucketStorage
    uploads: UploadGate
    auth: LocalAuthClient
    sessions: SessionRegistry
    loader: SectionLoader
    aggregator: PublicAggregator

    def shutdown(self) -> None:
        self.sessions.close_all()
        self.loader.shutdown()
        self.aggregator.shutdown()


def is_localhost(host: str) -> bool:
    """
    Check if a host string represents localhost.

    Args:
        host: Host string to check.

    Returns:
        True if host is localhost (127.x.x.x, ::1 or "localhost"), False otherwise.
    """
    return host == "localhost" or host.startswith("127.") or host == "::1"


def resolve_database_url(url: str) -> str:
    """Anchor relative SQLite paths at the working directory and create their folder."""
    prefix = "sqlite:///"
    if not url.startswith(prefix) or url == prefix + ":memory:":
        return url
    path = Path(url[len(prefix):])
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return prefix + path.as_posix()


def _safe_next(target: Optional[str]) -> Optional[str]:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return None


def _page_url(table: str) -> str:
    page = page_for(table)
    if page == "profile":
        return url_for("profile_page")
    return url_for("section_page", page=page)


def create_app(config: Optional[Config] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Loaded configuration. Loads folio.toml / environment if None.

    Returns:
        Configured Flask application.
    """
    config = config or load_config()

    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config["SECRET_KEY"] = get_secret_key(config)
    app.config["SQLALCHEMY_DATABASE_URI"] = resolve_database_url(config.database.url)
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["FOLIO_CONFIG"] = config

    # Extensions
    db.init_app(app)
    CSRFProtect(app)
    app.jinja_env.globals["csrf_token"] = generate_csrf

    locale = config.public.locale
    register_filters(app.jinja_env, lambda: locale)

    with app.app_context():
        db.create_all()

    storage_root = Path(config.storage.root)
    if not storage_root.is_absolute():
        storage_root = Path.cwd() / storage_root

    backend = Backend()
    repositories = Repositories(backend, QueryCache())
    storage = BucketStorage(storage_root, config.storage.url_prefix, config.storage.max_upload_bytes)
    auth = LocalAuthClient(config.session.lifetime_seconds)
    services = Services(
        config=config,
        backend=backend,
        repositories=repositories,
        storage=storage,
        uploads=UploadGate(),
        auth=auth,
        sessions=SessionRegistry(app, auth, config.session.keep_alive_seconds),
        loader=SectionLoader(app, repositories, timeout=config.public.section_timeout_seconds),
        aggregator=PublicAggregator(
            app,
            backend,
            storage,
            owner_user_id=config.public.owner_user_id,
            timeout=config.public.section_timeout_seconds,
        ),
    )
    app.extensions["folio"] = services

    @app.context_processor
    def inject_globals() -> Dict[str, Any]:
        return {
            "locale": locale,
            "identity": g.get("identity"),
            "skeleton_rows": SKELETON_ROWS,
            "empty_message": EMPTY_MESSAGE,
            "storage_url": storage.public_url,
        }

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        logger.warning(f"CSRF token validation failed for {request.path}")
        return Response(
            "CSRF token validation failed. Please reload the page and try again.",
            400,
        )

    # -------------------------
    # Public
    # -------------------------
    def render_public(contact_form=None, status: int = 200):
        owner = None
        outcomes = {}
        try:
            owner = services.aggregator.resolve_owner()
        except BackendError as e:
            flash(str(e), "error")
        if owner:
            outcomes = services.aggregator.gather(owner)
        skills = outcomes.get("skills")
        skill_groups = group_skills(skills.data or []) if skills and not skills.loading else {}
        return render_template(
            "public/index.html",
            owner=owner,
            outcomes=outcomes,
            skill_groups=skill_groups,
            contact_form=contact_form or ContactForm(),
        ), status

    @app.route("/")
    def index():
        return render_public()

    @app.route("/sections/<name>")
    def public_section(name: str):
        if name not in SECTIONS_BY_NAME:
            abort(404)
        try:
            owner = services.aggregator.resolve_owner()
        except BackendError as e:
            return render_template("public/_error.html", message=str(e)), 500
        if owner is None:
            abort(404)
        outcome = services.aggregator.outcome(name, owner)
        skill_groups = group_skills(outcome.data or []) if name == "skills" else {}
        return render_template("public/_section.html", outcome=outcome, skill_groups=skill_groups)

    @app.route("/contact", methods=["POST"])
    def contact():
        form = ContactForm(request.form)
        if not form.validate():
            return render_public(contact_form=form, status=400)
        try:
            services.repositories.messages.submit(form.data)
        except BackendError as e:
            logger.error(f"Contact submission failed: {e}")
            flash(CONTACT_FAILURE_MESSAGE, "error")
            return render_public(contact_form=form, status=500)
        flash("Message sent successfully!", "success")
        return redirect(url_for("index") + "#contact")

    @app.route("/cv")
    def cv():
        try:
            user_id = request.args.get("user_id") or services.aggregator.resolve_owner()
            if not user_id:
                return jsonify({"error": "No portfolio owner found"}), 404
            data = collect_cv_data(services.aggregator, user_id)
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404
        except BackendError as e:
            logger.error(f"CV generation failed: {e}")
            return jsonify({"error": str(e)}), 500
        return Response(render_cv(data, locale), mimetype="text/html")

    @app.route("/storage/<bucket>/<path:object_path>")
    def storage_object(bucket: str, object_path: str):
        location = storage.resolve(bucket, object_path)
        if location is None:
            abort(404)
        return send_file(location)

    # -------------------------
    # Auth
    # -------------------------
    @app.route("/login", methods=["GET", "POST"])
    def login():
        form = LoginForm(request.form) if request.method == "POST" else LoginForm()
        if request.method == "POST" and form.validate():
            try:
                provider = services.sessions.open(form.email.data, form.password.data)
            except AuthenticationError as e:
                flash(str(e), "error")
            except BackendError as e:
                flash(str(e), "error")
            else:
                session[SESSION_TOKEN_KEY] = provider.token
                flash("Logged in successfully", "success")
                return redirect(_safe_next(request.args.get("next")) or url_for("dashboard"))
        return render_template("login.html", form=form)

    @app.route("/logout", methods=["POST"])
    def logout():
        try:
            services.sessions.close(session.pop(SESSION_TOKEN_KEY, None))
        except BackendError as e:
            flash(str(e), "error")
        flash("Logged out", "success")
        return redirect(url_for("index"))

    # -------------------------
    # Admin: dashboard
    # -------------------------
    @app.route("/admin")
    @requires_login
    def dashboard():
        counts = None
        try:
            counts = {
                "projects": services.repositories.entity("projects").count(g.identity),
                "skills": services.repositories.entity("skills").count(g.identity),
                "experience": services.repositories.entity("experience").count(g.identity),
                "unread_messages": services.repositories.messages.unread_count(g.identity),
            }
        except BackendError as e:
            flash(str(e), "error")
        return render_template("admin/dashboard.html", counts=counts)

    # -------------------------
    # Admin: section pages
    # -------------------------
    def load_page_sections(page: str):
        states = services.loader.load([SECTIONS[t] for t in PAGES[page]], g.identity)
        for state in states:
            if state.error:
                flash(state.error, "error")
        return states

    @app.route("/admin/<any(skills, projects, experience):page>")
    @requires_login
    def section_page(page: str):
        states = load_page_sections(page)
        return render_template("admin/section_page.html", page=page, states=states)

    @app.route("/admin/<table>/rows")
    @requires_login
    def section_rows(table: str):
        section = SECTIONS.get(table)
        if section is None:
            abort(404)
        state = load_section(section, services.repositories, g.identity)
        if state.error:
            return render_template("admin/_rows.html", state=state), 502
        return render_template("admin/_rows.html", state=state)

    @app.route("/admin/<table>/new", methods=["GET", "POST"])
    @app.route("/admin/<table>/<record_id>/edit", methods=["GET", "POST"])
    @requires_login
    def edit_record(table: str, record_id: Optional[str] = None):
        section = SECTIONS.get(table)
        if section is None:
            abort(404)
        try:
            dialog = dialog_for(services.repositories, table, g.identity, record_id)
        except BackendError as e:
            flash(str(e), "error")
            return redirect(_page_url(table))

        if request.method == "GET":
            return render_template(
                "admin/dialog.html", section=section, dialog=dialog, form=dialog.form(), cancel_url=_page_url(table)
            )

        form = dialog.form(request.form)
        extra: Dict[str, Any] = {}
        image = request.files.get("image_file") if table == "projects" else None
        if image is not None and image.filename:
            try:
                with services.uploads.hold(g.identity, "project-image"):
                    extra["image_url"] = storage.upload(
                        PROJECT_IMAGES_BUCKET, g.identity, image.filename, image.read()
                    )
            except StorageError as e:
                flash(f"Image upload failed: {e}", "error")

        outcome = dialog.submit(form, extra)
        if outcome.ok:
            flash(f"{section.schema.title} saved successfully", "success")
            return redirect(_page_url(table))
        if outcome.error:
            flash(outcome.error, "error")
        return render_template(
            "admin/dialog.html", section=section, dialog=dialog, form=form, cancel_url=_page_url(table)
        ), 400

    @app.route("/admin/<table>/<record_id>/delete", methods=["GET", "POST"])
    @requires_login
    def delete_record(table: str, record_id: str):
        section = SECTIONS.get(table)
        if section is None:
            abort(404)
        repository = services.repositories.entity(table)

        if request.method == "POST":
            try:
                repository.delete(g.identity, record_id)
                flash(f"{section.schema.title} deleted successfully", "success")
            except BackendError as e:
                flash(str(e), "error")
            return redirect(_page_url(table))

        try:
            record = repository.get(g.identity, record_id)
        except BackendError as e:
            flash(str(e), "error")
            return redirect(_page_url(table))
        return render_template(
            "admin/confirm_delete.html",
            title=section.schema.title,
            summary=section.cells(record, locale)[0],
            action=url_for("delete_record", table=table, record_id=record_id),
            cancel_url=_page_url(table),
        )

    @app.route("/admin/projects/image", methods=["POST"])
    @requires_login
    def upload_project_image():
        image = request.files.get("file")
        if image is None or not image.filename:
            return jsonify({"error": "No file selected"}), 400
        if services.uploads.is_busy(g.identity, "project-image"):
            return jsonify({"error": "An upload is already in progress"}), 409
        try:
            with services.uploads.hold(g.identity, "project-image"):
                path = storage.upload(PROJECT_IMAGES_BUCKET, g.identity, image.filename, image.read())
        except StorageError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"path": path, "url": storage.public_url(PROJECT_IMAGES_BUCKET, path)}), 201

    # -------------------------
    # Admin: profile
    # -------------------------
    @app.route("/admin/profile", methods=["GET", "POST"])
    @requires_login
    def profile_page():
        profiles = services.repositories.profiles
        profile = None
        try:
            profile = profiles.get(g.identity)
        except BackendError as e:
            flash(str(e), "error")

        status = 200
        if request.method == "POST":
            form = ProfileForm(request.form)
            if form.validate():
                try:
                    profiles.upsert(g.identity, cleaned_values(form, PROFILE_SCHEMA))
                    flash("Profile updated successfully", "success")
                    return redirect(url_for("profile_page"))
                except BackendError as e:
                    flash(str(e), "error")
            status = 400
        else:
            form = ProfileForm(data=profile or {})

        avatar_url = None
        if profile:
            avatar_url = storage.public_url(
                AVATARS_BUCKET, profile.get("photo_url"), timestamp_version(profile.get("updated_at"))
            )
        states = load_page_sections("profile")
        return render_template(
            "admin/profile.html",
            form=form,
            profile=profile,
            avatar_url=avatar_url,
            avatar_busy=services.uploads.is_busy(g.identity, "avatar"),
            states=states,
        ), status

    @app.route("/admin/profile/avatar", methods=["POST"])
    @requires_login
    def upload_avatar():
        image = request.files.get("avatar")
        if image is None or not image.filename:
            flash("Please choose an image to upload", "error")
            return redirect(url_for("profile_page"))
        try:
            with services.uploads.hold(g.identity, "avatar"):
                path = storage.upload(AVATARS_BUCKET, g.identity, image.filename, image.read())
                services.repositories.profiles.set_photo(g.identity, path)
            flash("Avatar updated successfully", "success")
        except BackendError as e:
            flash(str(e), "error")
        return redirect(url_for("profile_page"))

    # -------------------------
    # Admin: messages
    # -------------------------
    @app.route("/admin/messages")
    @requires_login
    def messages_page():
        messages = []
        try:
            messages = services.repositories.messages.list(g.identity)
        except BackendError as e:
            flash(str(e), "error")
        return render_template("admin/messages.html", messages=messages)

    @app.route("/admin/messages/<record_id>/read", methods=["POST"])
    @requires_login
    def mark_message(record_id: str):
        is_read = request.form.get("is_read", "1") == "1"
        try:
            services.repositories.messages.set_read(g.identity, record_id, is_read)
        except BackendError as e:
            flash(str(e), "error")
        return redirect(url_for("messages_page"))

    @app.route("/admin/messages/<record_id>/delete", methods=["GET", "POST"])
    @requires_login
    def delete_message(record_id: str):
        if request.method == "POST":
            try:
                services.repositories.messages.delete(g.identity, record_id)
                flash("Message deleted successfully", "success")
            except BackendError as e:
                flash(str(e), "error")
            return redirect(url_for("messages_page"))

        try:
            message = services.repositories.messages.get(g.identity, record_id)
        except BackendError as e:
            flash(str(e), "error")
            return redirect(url_for("messages_page"))
        return render_template(
            "admin/confirm_delete.html",
            title="Message",
            summary=f"{message['name']} <{message['email']}>",
            action=url_for("delete_message", record_id=record_id),
            cancel_url=url_for("messages_page"),
        )

    # -------------------------
    # Admin: settings
    # -------------------------
    @app.route("/admin/settings", methods=["GET", "POST"])
    @requires_login
    def settings_page():
        form = PasswordForm(request.form) if request.method == "POST" else PasswordForm()
        if request.method == "POST":
            if form.validate():
                try:
                    services.auth.update_password(g.identity, form.password.data)
                    flash("Password updated successfully", "success")
                    return redirect(url_for("settings_page"))
                except (BackendError, ValidationError, AuthenticationError) as e:
                    flash(str(e), "error")
            return render_template("admin/settings.html", form=form), 400
        return render_template("admin/settings.html", form=form)

    return app


def run_server(
    config: Config,
    host: Optional[str] = None,
    port: Optional[int] = None,
    debug: Optional[bool] = None,
    allow_unsafe_bind: bool = False,
) -> None:
    """
    Run the development web server.

    Args:
        config: Loaded configuration.
        host: Host to bind to. Defaults to server.host (127.0.0.1).
        port: Port to listen on. Defaults to server.port.
        debug: Enable debug mode. Defaults to server.debug.
        allow_unsafe_bind: Allow binding to a non-localhost address.
    """
    host = host or config.server.host
    port = port or config.server.port
    debug = config.server.debug if debug is None else debug

    if not is_localhost(host) and not allow_unsafe_bind:
        logger.error(
            f"Refusing to bind to '{host}': this development server should stay on localhost. "
            "Pass --i-know-what-im-doing to override."
        )
        raise SystemExit(1)

    app = create_app(config)
    logger.info(f"Starting Folio at http://{host}:{port}")
    print(f"\nFolio running at http://{host}:{port}")
    print("   Press Ctrl+C to stop\n")
    try:
        app.run(host=host, port=port, debug=debug)
    finally:
        app.extensions["folio"].shutdown()
