import mongomock
import pytest

from app import create_app
from settings import Settings

PASSWORD = "s3cret-pass"


class RecordingMailer:
    """Stands in for the Resend mailer and remembers every message."""

    def __init__(self):
        self.verification_emails = []
        self.reset_emails = []
        self.failure = None

    def send_verification_email(self, recipient, name, url):
        self.verification_emails.append({"to": recipient, "name": name, "url": url})
        if self.failure:
            return False, self.failure
        return True, None

    def send_forgot_password_email(self, recipient, name, otp, expiration_minutes):
        self.reset_emails.append(
            {"to": recipient, "name": name, "otp": otp, "minutes": expiration_minutes}
        )
        if self.failure:
            return False, self.failure
        return True, None


@pytest.fixture
def settings(tmp_path):
    return Settings(
        mongo_uri="mongodb://localhost:27017/blinkeyit-test",
        access_token_secret="access-secret-for-tests",
        refresh_token_secret="refresh-secret-for-tests",
        frontend_url="http://shop.test",
        upload_folder=str(tmp_path / "uploads"),
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def database():
    return mongomock.MongoClient().db


@pytest.fixture
def app(settings, database, mailer):
    application = create_app(settings, database=database, mailer=mailer)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(database):
    return database.users


@pytest.fixture
def register(app):
    def _register(email="jane@example.com", name="Jane", password=PASSWORD):
        response = app.test_client().post(
            "/api/user/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()["data"]

    return _register


@pytest.fixture
def login(app):
    """Log in on a throwaway client so the test's own client keeps no cookies."""

    def _login(email="jane@example.com", password=PASSWORD):
        response = app.test_client().post(
            "/api/user/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200, response.get_json()
        return response.get_json()["data"]

    return _login


@pytest.fixture
def auth_headers(register, login):
    register()
    tokens = login()
    return {"Authorization": f"Bearer {tokens['accessToken']}"}
