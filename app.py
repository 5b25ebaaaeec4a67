import io
import logging
from functools import wraps

from flask import Flask, Response, current_app, jsonify, request, send_file

from config import Config
from models import db
from accounts import AccountService, LocalAuthProvider
from admin import AdminService, ContactService
from documents import DocumentService
from errors import NotFound, ServiceError, ValidationError, failure, status_for
from media import (
    CloudinaryClient, LocalMediaStore, UploadFile, folder_path, optimize_for_web, responsive_urls,
    strip_transformations, upload_tags,
)
from sharing import SharingService
from store import MetadataStore
from utils import Mailer, load_key, utcnow
from validators import (
    validate_document_fields, validate_email, validate_file, validate_password,
)

log = logging.getLogger(__name__)


class Services:
    """Everything the views need, built once per app."""

    def __init__(self, store, media, mailer, auth, base_url, clock):
        self.store = store
        self.media = media
        self.mailer = mailer
        self.auth = auth
        self.documents = DocumentService(store, media)
        self.sharing = SharingService(store, self.documents, base_url, clock)
        self.accounts = AccountService(auth, store)
        self.admin = AdminService(store)
        self.contact = ContactService(store)


def build_media(config, base_url):
    if config.get("CLOUDINARY_CLOUD_NAME") and config.get("CLOUDINARY_UPLOAD_PRESET"):
        return CloudinaryClient.from_config(config)
    return LocalMediaStore(config["UPLOAD_FOLDER"], load_key(config.get("ENCRYPTION_KEY_B64")), base_url)


def services():
    return current_app.extensions["docshare"]


def respond(result, status=None):
    return jsonify(result), status or status_for(result)


def payload():
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def text_field(data, key, default=""):
    """String value of ``key``; any other JSON type is a validation error."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


# ==========================================================
# HELPER FUNCTIONS
# ==========================================================
def login_required(func):
    """Resolves the signed-in profile and passes it to the view."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = services().accounts.current_profile()
        if not user:
            return jsonify({"success": False, "error": "login required", "kind": "auth"}), 401
        return func(user, *args, **kwargs)
    return wrapper


def create_app(overrides=None, media=None, mailer=None, clock=utcnow):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.update(overrides or {})
    logging.getLogger().setLevel(app.config["LOG_LEVEL"])
    db.init_app(app)

    base_url = app.config["SHARE_BASE_URL"]
    mailer = mailer or Mailer.from_config(app.config)
    media = media or build_media(app.config, base_url)
    store = MetadataStore(db, clock)
    auth = LocalAuthProvider(db, mailer, app.config["SECRET_KEY"], base_url)
    app.extensions["docshare"] = Services(store, media, mailer, auth, base_url, clock)

    with app.app_context():
        db.create_all()

    register_routes(app)
    return app


def register_routes(app):
    # ==========================================================
    # AUTHENTICATION ROUTES
    # ==========================================================
    @app.route("/signup", methods=["POST"])
    def signup():
        data = payload()
        try:
            email = text_field(data, "email").strip()
            password = text_field(data, "password")
            full_name = text_field(data, "full_name")
            national_id = text_field(data, "national_id") or None
        except ValidationError as exc:
            return respond(failure(exc))

        if not validate_email(email):
            return respond(failure(ValidationError("Please enter a valid email address")))
        strength = validate_password(password)
        if not strength["is_valid"]:
            return respond(failure(ValidationError(errors=strength["errors"])))

        result = services().accounts.register(
            email, password, full_name, national_id
        )
        return respond(result, 201 if result["success"] else None)

    @app.route("/login", methods=["POST"])
    def login():
        data = payload()
        try:
            email, password = text_field(data, "email"), text_field(data, "password")
        except ValidationError as exc:
            return respond(failure(exc))
        return respond(services().accounts.login(email, password))

    @app.route("/logout", methods=["GET", "POST"])
    def logout():
        return respond(services().accounts.logout())

    @app.route("/verify/resend", methods=["POST"])
    @login_required
    def resend_verification(user):
        return respond(services().accounts.resend_verification())

    @app.route("/verify/<token>")
    def verify_email(token):
        return respond(services().accounts.confirm_email(token))

    @app.route("/password/forgot", methods=["POST"])
    def forgot_password():
        try:
            email = text_field(payload(), "email")
        except ValidationError as exc:
            return respond(failure(exc))
        return respond(services().accounts.forgot_password(email))

    @app.route("/password/reset/<token>", methods=["POST"])
    def reset_password(token):
        try:
            password = text_field(payload(), "password")
        except ValidationError as exc:
            return respond(failure(exc))
        strength = validate_password(password)
        if not strength["is_valid"]:
            return respond(failure(ValidationError(errors=strength["errors"])))
        return respond(services().accounts.reset_password(token, password))

    @app.route("/profile", methods=["GET"])
    @login_required
    def profile(user):
        return respond(services().accounts.refresh_user())

    @app.route("/profile", methods=["PATCH"])
    @login_required
    def edit_profile(user):
        return respond(services().accounts.update_profile(user["id"], payload()))

    # ==========================================================
    # DOCUMENT MANAGEMENT ROUTES
    # ==========================================================
    @app.route("/upload", methods=["POST"])
    @login_required
    def upload(user):
        if "file" not in request.files:
            return respond(failure(ValidationError("no file provided")))
        storage = request.files["file"]
        if not storage.filename:
            return respond(failure(ValidationError("empty filename")))

        file = UploadFile.from_storage(storage)
        checked = validate_file(file, request.form.get("allowed", "documents"))
        if not checked["is_valid"]:
            return respond(failure(ValidationError(errors=checked["errors"])))

        fields = {
            "title": request.form.get("title", ""),
            "description": request.form.get("description", ""),
            "category": request.form.get("category", "others"),
            "document_type": request.form.get("document_type") or None,
            "tags": [t.strip() for t in request.form.get("tags", "").split(",") if t.strip()],
        }
        errors = validate_document_fields(fields)
        if errors:
            return respond(failure(ValidationError(errors=errors)))

        folder = folder_path(fields["category"])
        try:
            stored = services().media.upload(
                file, folder=folder, tags=upload_tags(folder, fields["category"]),
                category=fields["category"], description=fields["description"],
            )
        except ServiceError as exc:
            return respond(failure(exc, message="Failed to upload file"))

        result = services().documents.upload_document(user["id"], dict(
            fields,
            media_url=stored["url"],
            media_id=stored["media_id"],
            file_size=stored["bytes"],
            mime_type=stored["mime_type"],
            resource_type=stored["resource_type"],
        ))
        if result["success"]:
            result["thumbnail_url"] = stored["thumbnail_url"]
            if stored["resource_type"] == "image":
                result["urls"] = dict(responsive_urls(stored["url"]), web=optimize_for_web(stored["url"]))
        return respond(result, 201 if result["success"] else None)

    @app.route("/documents")
    @login_required
    def list_documents(user):
        args = request.args
        try:
            page_size = int(args.get("page_size", 10))
        except ValueError:
            return respond(failure(ValidationError("page_size must be a number"), documents=[]))
        result = services().documents.list_documents(
            user["id"],
            category=args.get("category"),
            sort_by=args.get("sort_by", "created_at"),
            sort_order=args.get("sort_order", "desc"),
            page_size=page_size,
            cursor=args.get("after") or None,
        )
        cursor = result.get("cursor")
        result["cursor"] = cursor["id"] if cursor else None
        return respond(result)

    @app.route("/documents/search")
    @login_required
    def search_documents(user):
        args = request.args
        try:
            limit = int(args.get("limit", 20))
        except ValueError:
            return respond(failure(ValidationError("limit must be a number"), documents=[]))
        return respond(services().documents.search_documents(
            user["id"], args.get("q", ""),
            category=args.get("category", "all"),
            sort_by=args.get("sort_by", "created_at"),
            sort_order=args.get("sort_order", "desc"),
            limit=limit,
        ))

    @app.route("/documents/stats")
    @login_required
    def document_stats(user):
        return respond(services().documents.compute_stats(user["id"]))

    @app.route("/documents/<document_id>", methods=["GET"])
    @login_required
    def get_document(user, document_id):
        return respond(services().documents.get_document(document_id, user["id"]))

    @app.route("/documents/<document_id>", methods=["PATCH"])
    @login_required
    def update_document(user, document_id):
        return respond(services().documents.update_document(document_id, user["id"], payload()))

    @app.route("/documents/<document_id>", methods=["DELETE"])
    @login_required
    def delete_document(user, document_id):
        return respond(services().documents.delete_document(document_id, user["id"]))

    # ==========================================================
    # SHARING ROUTES
    # ==========================================================
    @app.route("/documents/<document_id>/share", methods=["POST"])
    @login_required
    def enable_sharing(user, document_id):
        return respond(services().sharing.enable_sharing(
            document_id, user["id"],
            expiry_hours=payload().get("expiry_hours"),
            client_context=request.headers.get("User-Agent"),
        ))

    @app.route("/documents/<document_id>/share", methods=["DELETE"])
    @login_required
    def disable_sharing(user, document_id):
        return respond(services().sharing.disable_sharing(document_id, user["id"]))

    @app.route("/documents/<document_id>/qr")
    @login_required
    def share_qr(user, document_id):
        result = services().sharing.qr_code(document_id, user["id"])
        if not result["success"]:
            return respond(result)
        return Response(result["png"], mimetype="image/png")

    @app.route("/shared/<document_id>")
    def public_document(document_id):
        return respond(services().sharing.view_public(
            document_id, client_context=request.headers.get("User-Agent")
        ))

    @app.route("/media/upload/<path:media_path>")
    def media_file(media_path):
        store = services().media
        if not isinstance(store, LocalMediaStore):
            return respond(failure(NotFound("Media is served by the media host")))
        try:
            data = store.read(strip_transformations(media_path))
        except NotFound as exc:
            return respond(failure(exc))
        return send_file(io.BytesIO(data), mimetype="application/octet-stream",
                         download_name=media_path.rsplit("/", 1)[-1])

    # ==========================================================
    # CONTACT + ADMIN ROUTES
    # ==========================================================
    @app.route("/contact", methods=["POST"])
    def contact():
        user = services().accounts.current_profile()
        result = services().contact.submit_contact_message(payload(), user["id"] if user else None)
        return respond(result, 201 if result["success"] else None)

    @app.route("/admin/users")
    @login_required
    def admin_users(user):
        return respond(services().admin.fetch_all_users(user))

    @app.route("/admin/users/<uid>/role", methods=["PATCH"])
    @login_required
    def admin_set_role(user, uid):
        return respond(services().admin.update_user_role(user, uid, payload().get("role")))

    @app.route("/admin/contacts")
    @login_required
    def admin_contacts(user):
        return respond(services().admin.fetch_contact_messages(user))


if __name__ == "__main__":
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run(host="0.0.0.0", port=8080, debug=True)
