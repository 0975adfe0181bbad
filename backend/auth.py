from functools import wraps

from flask import g
from flask_jwt_extended import JWTManager, get_jwt_identity, jwt_required

from errors import error_response

ACCESS_COOKIE_NAME = "accessToken"
REFRESH_COOKIE_NAME = "refreshToken"

NO_TOKEN_MESSAGE = "Access denied. No token provided."
EXPIRED_TOKEN_MESSAGE = "Token has expired. Please login again."
INVALID_TOKEN_MESSAGE = "Invalid token. Unauthorized access."


def configure_auth(app, settings) -> JWTManager:
    """Wire the access-token context and the 401 responses for the gate."""
    app.config["JWT_SECRET_KEY"] = settings.access_token_secret
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = settings.access_token_ttl
    # Cookie first, bearer header as fallback.
    app.config["JWT_TOKEN_LOCATION"] = ["cookies", "headers"]
    app.config["JWT_ACCESS_COOKIE_NAME"] = ACCESS_COOKIE_NAME
    app.config["JWT_REFRESH_COOKIE_NAME"] = REFRESH_COOKIE_NAME
    app.config["JWT_COOKIE_SECURE"] = True
    app.config["JWT_COOKIE_SAMESITE"] = "None"
    app.config["JWT_COOKIE_CSRF_PROTECT"] = False

    jwt_manager = JWTManager(app)

    @jwt_manager.unauthorized_loader
    def missing_token(reason):
        return error_response(NO_TOKEN_MESSAGE, 401)

    @jwt_manager.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response(EXPIRED_TOKEN_MESSAGE, 401)

    @jwt_manager.invalid_token_loader
    def invalid_token(reason):
        return error_response(INVALID_TOKEN_MESSAGE, 401)

    return jwt_manager


def auth_required(view):
    """Reject the request unless it carries a valid access token.

    On success the account id from the token is placed on ``g.user_id``.
    The account store is never consulted here.
    """

    @jwt_required()
    @wraps(view)
    def wrapped(*args, **kwargs):
        g.user_id = get_jwt_identity()
        return view(*args, **kwargs)

    return wrapped


def current_user_id():
    return g.get("user_id")
