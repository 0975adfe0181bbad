from typing import Optional
from urllib.parse import urljoin

from flask import Flask, request, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import set_access_cookies, set_refresh_cookies, unset_jwt_cookies
from flask_pymongo import PyMongo
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from account_service import AccountService
from accounts import AccountPatch, AccountStore, serialize_document
from auth import auth_required, configure_auth, current_user_id
from catalog import CatalogService, serialize_subcategory
from errors import ServiceError, error_response, success_response
from mailer import Mailer
from settings import Settings
from tokens import TokenIssuer
from uploads import ImagePayload, ImageStore


def create_app(
    settings: Optional[Settings] = None,
    database=None,
    mailer=None,
) -> Flask:
    """Create and configure the Flask application.

    ``database`` and ``mailer`` default to Flask-PyMongo and Resend; tests pass
    in-memory replacements.
    """
    settings = settings or Settings.from_env()
    app = Flask(__name__)

    # Honor proxy headers so secure cookies and upload URLs keep the public origin.
    if settings.trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=settings.trusted_proxy_hops,
            x_proto=settings.trusted_proxy_hops,
            x_host=settings.trusted_proxy_hops,
            x_port=settings.trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["MONGO_URI"] = settings.mongo_uri
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_mb * 1024 * 1024
    app.config["UPLOAD_FOLDER"] = settings.upload_folder

    # --- Initialize extensions ---
    allowed_origins = [settings.frontend_url, *settings.cors_origins]
    allowed_origins = [origin for origin in allowed_origins if origin]
    CORS(app, supports_credentials=True, origins=allowed_origins or "*")

    configure_auth(app, settings)

    if database is None:
        database = PyMongo(app).db
    db = database

    accounts = AccountStore(db.users)
    try:
        accounts.ensure_indexes()
    except Exception as exc:
        app.logger.warning("Unable to ensure unique email index for users: %s", exc)

    image_store = ImageStore(settings.upload_folder)
    account_service = AccountService(
        accounts,
        TokenIssuer(settings.refresh_token_secret, settings.refresh_token_ttl),
        mailer or Mailer(settings.resend_api_key, settings.mail_sender),
        settings,
        image_store=image_store,
        logger=app.logger,
    )
    catalog = CatalogService(db, app.logger)

    app.extensions["account_service"] = account_service
    app.extensions["catalog_service"] = catalog

    # --- Helpers ---

    def read_payload():
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    def build_upload_url(filename: Optional[str]) -> str:
        if not filename:
            return ""
        return urljoin(request.host_url, f"uploads/{filename}")

    # --- Error handling ---

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        return error_response(exc.message, exc.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response(str(exc) or "Internal Server Error", 500)

    # --- ROUTES ---

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    @app.route("/uploads/<path:filename>")
    def serve_uploaded_file(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    # User accounts

    @app.route("/api/user/register", methods=["POST"])
    def register():
        payload = read_payload()
        account = account_service.register(
            str(payload.get("name") or "").strip(),
            str(payload.get("email") or "").strip(),
            str(payload.get("password") or ""),
        )
        return success_response(
            "User registration successful! Please verify your email.",
            serialize_document(account),
            201,
        )

    @app.route("/api/user/verify-email", methods=["POST"])
    def verify_email():
        payload = read_payload()
        changed = account_service.verify_email(str(payload.get("code") or "").strip())
        message = (
            "Email verification successful!" if changed else "Email is already verified."
        )
        return success_response(message)

    @app.route("/api/user/login", methods=["POST"])
    def login():
        payload = read_payload()
        access_token, refresh_token = account_service.login(
            str(payload.get("email") or "").strip(),
            str(payload.get("password") or ""),
        )
        response, status_code = success_response(
            "Login successful!",
            {"accessToken": access_token, "refreshToken": refresh_token},
        )
        set_access_cookies(response, access_token)
        set_refresh_cookies(response, refresh_token)
        return response, status_code

    @app.route("/api/user/logout", methods=["POST"])
    @auth_required
    def logout():
        account_service.logout(current_user_id())
        response, status_code = success_response("Logout successful.")
        unset_jwt_cookies(response)
        return response, status_code

    @app.route("/api/user/avatar", methods=["PUT"])
    @auth_required
    def upload_avatar():
        payload = ImagePayload.from_upload(request.files.get("avatar"))
        data = account_service.upload_avatar(current_user_id(), payload, build_upload_url)
        return success_response("Profile avatar uploaded successfully", data)

    @app.route("/api/user/update", methods=["PUT"])
    @auth_required
    def update_user_details():
        patch = AccountPatch.from_payload(read_payload())
        account = account_service.update_profile(current_user_id(), patch)
        return success_response("User updated successfully", serialize_document(account))

    @app.route("/api/user/forgot-password", methods=["POST"])
    def forgot_password():
        payload = read_payload()
        account_service.forgot_password(str(payload.get("email") or "").strip())
        return success_response("OTP has been sent to your email")

    @app.route("/api/user/verify-otp", methods=["POST"])
    def verify_forgot_password_otp():
        payload = read_payload()
        otp = payload.get("otp")
        account_service.verify_forgot_password_otp(
            str(payload.get("email") or "").strip(),
            "" if otp is None else str(otp).strip(),
        )
        return success_response("OTP verification successful")

    @app.route("/api/user/reset-password", methods=["POST"])
    def reset_password():
        payload = read_payload()
        otp = payload.get("otp")
        account_service.reset_password(
            str(payload.get("email") or "").strip(),
            str(payload.get("newPassword") or ""),
            str(payload.get("confirmPassword") or ""),
            otp=None if otp is None else str(otp).strip(),
        )
        return success_response("Password updated successfully")

    # Images

    @app.route("/api/file/upload", methods=["POST"])
    @auth_required
    def upload_image():
        payload = ImagePayload.from_upload(request.files.get("image"))
        if payload is None:
            return error_response("No file provided", 400)

        filename, image_error = image_store.save(payload)
        if image_error:
            return error_response(image_error, 400)

        return success_response(
            "Image uploaded successfully",
            {"url": build_upload_url(filename), "filename": filename},
        )

    # Categories

    @app.route("/api/category/add", methods=["POST"])
    @auth_required
    def add_category():
        payload = read_payload()
        category = catalog.add_category(payload.get("name"), payload.get("image"))
        return success_response(
            "Category created successfully", serialize_document(category), 201
        )

    @app.route("/api/category/get", methods=["GET"])
    def get_categories():
        categories = [serialize_document(item) for item in catalog.list_categories()]
        return success_response("Categories fetched successfully", categories)

    @app.route("/api/category/update", methods=["PUT"])
    @auth_required
    def update_category():
        payload = read_payload()
        category = catalog.update_category(
            payload.get("_id"), payload.get("name"), payload.get("image")
        )
        return success_response("Category updated successfully", serialize_document(category))

    @app.route("/api/category/delete", methods=["DELETE"])
    @auth_required
    def delete_category():
        payload = read_payload()
        catalog.delete_category(payload.get("_id"))
        return success_response("Category deleted successfully")

    # Subcategories

    @app.route("/api/subcategory/add", methods=["POST"])
    @auth_required
    def add_subcategory():
        payload = read_payload()
        subcategory = catalog.add_subcategory(
            payload.get("name"), payload.get("image"), payload.get("category")
        )
        return success_response(
            "Subcategory created successfully", serialize_subcategory(subcategory), 201
        )

    @app.route("/api/subcategory/get", methods=["GET"])
    def get_subcategories():
        subcategories = [
            serialize_subcategory(item) for item in catalog.list_subcategories()
        ]
        return success_response("Subcategories fetched successfully", subcategories)

    @app.route("/api/subcategory/update", methods=["PUT"])
    @auth_required
    def update_subcategory():
        payload = read_payload()
        subcategory = catalog.update_subcategory(
            payload.get("_id"),
            payload.get("name"),
            payload.get("image"),
            payload.get("category"),
        )
        return success_response(
            "Subcategory updated successfully", serialize_subcategory(subcategory)
        )

    @app.route("/api/subcategory/delete", methods=["DELETE"])
    @auth_required
    def delete_subcategory():
        payload = read_payload()
        catalog.delete_subcategory(payload.get("_id"))
        return success_response("Subcategory deleted successfully")

    return app


if __name__ == "__main__":
    import os

    port = int(os.environ.get("PORT", 8080))
    create_app().run(host="0.0.0.0", port=port)
