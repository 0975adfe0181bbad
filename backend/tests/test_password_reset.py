from dataclasses import replace
from datetime import datetime, timedelta

import mongomock
import pytest
from freezegun import freeze_time

from app import create_app
from conftest import PASSWORD
from security import verify_password

EMAIL = "jane@example.com"


def request_otp(client, email=EMAIL):
    return client.post("/api/user/forgot-password", json={"email": email})


def verify_otp(client, otp, email=EMAIL):
    return client.post("/api/user/verify-otp", json={"email": email, "otp": otp})


def reset(client, new_password="new-pass", confirm=None, email=EMAIL, **extra):
    payload = {
        "email": email,
        "newPassword": new_password,
        "confirmPassword": new_password if confirm is None else confirm,
    }
    payload.update(extra)
    return client.post("/api/user/reset-password", json=payload)


class TestForgotPassword:
    def test_sets_otp_expiring_in_one_hour(self, client, register, users, mailer):
        register()
        with freeze_time("2026-03-01 10:00:00"):
            response = request_otp(client)

        assert response.status_code == 200
        assert response.get_json()["message"] == "OTP has been sent to your email"

        stored = users.find_one({"email": EMAIL})
        assert stored["forgot_password_expiry"] == datetime(2026, 3, 1, 11, 0, 0)
        otp = stored["forgot_password_otp"]
        assert isinstance(otp, str) and len(otp) == 6 and otp.isdigit()
        assert mailer.reset_emails[-1]["otp"] == otp
        assert mailer.reset_emails[-1]["to"] == EMAIL

    def test_unknown_email(self, client):
        response = request_otp(client, "ghost@example.com")
        assert response.status_code == 404
        assert response.get_json()["message"] == "User with this email does not exist"

    def test_missing_email(self, client):
        response = client.post("/api/user/forgot-password", json={})
        assert response.status_code == 400
        assert response.get_json()["message"] == "Email is required"

    def test_mail_failure_is_a_server_error_but_otp_persists(
        self, client, register, users, mailer
    ):
        register()
        mailer.failure = "provider down"
        response = request_otp(client)
        assert response.status_code == 500
        assert response.get_json()["message"] == "Failed to send OTP email"
        stored = users.find_one({"email": EMAIL})
        assert stored["forgot_password_otp"] is not None
        assert stored["forgot_password_expiry"] is not None

    def test_new_request_overwrites_pending_otp(self, client, register, users, mailer):
        register()
        request_otp(client)
        request_otp(client)
        stored = users.find_one({"email": EMAIL})
        assert stored["forgot_password_otp"] == mailer.reset_emails[-1]["otp"]


class TestVerifyOtp:
    def test_correct_code_before_expiry(self, client, register, mailer, users):
        register()
        with freeze_time("2026-03-01 10:00:00") as frozen:
            request_otp(client)
            otp = mailer.reset_emails[-1]["otp"]
            frozen.tick(timedelta(minutes=59))
            response = verify_otp(client, otp)

        assert response.status_code == 200
        assert response.get_json()["message"] == "OTP verification successful"
        # Advisory only: the pending reset is untouched.
        assert users.find_one({"email": EMAIL})["forgot_password_otp"] == otp

    def test_numeric_code_is_normalized(self, client, register, mailer):
        register()
        request_otp(client)
        otp = mailer.reset_emails[-1]["otp"]
        assert verify_otp(client, int(otp)).status_code == 200

    def test_correct_code_after_expiry(self, client, register, mailer):
        register()
        with freeze_time("2026-03-01 10:00:00") as frozen:
            request_otp(client)
            otp = mailer.reset_emails[-1]["otp"]
            frozen.tick(timedelta(hours=1, seconds=1))
            response = verify_otp(client, otp)

        assert response.status_code == 400
        assert response.get_json()["message"] == "OTP has expired"

    def test_wrong_code_before_expiry(self, client, register):
        register()
        request_otp(client)
        response = verify_otp(client, "000000")
        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid OTP"

    def test_no_pending_reset_counts_as_expired(self, client, register):
        register()
        response = verify_otp(client, "123456")
        assert response.status_code == 400
        assert response.get_json()["message"] == "OTP has expired"

    def test_non_ascii_code_is_invalid(self, client, register):
        register()
        request_otp(client)
        response = verify_otp(client, "\uff11\uff12\uff13\uff14\uff15\uff16")
        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid OTP"

    def test_unknown_email_and_missing_fields(self, client):
        assert verify_otp(client, "123456", email="ghost@example.com").status_code == 404
        response = client.post("/api/user/verify-otp", json={"email": EMAIL})
        assert response.status_code == 400
        assert response.get_json()["message"] == "Email and OTP are required"


class TestResetPassword:
    def test_mismatch_leaves_hash_alone(self, client, register, users):
        register()
        request_otp(client)
        before = users.find_one({"email": EMAIL})

        response = reset(client, "new-pass", confirm="other-pass")
        assert response.status_code == 400
        assert (
            response.get_json()["message"]
            == "New password and confirm password must be same"
        )
        after = users.find_one({"email": EMAIL})
        assert after["password"] == before["password"]
        assert after["forgot_password_otp"] == before["forgot_password_otp"]

    def test_success_replaces_hash_and_clears_otp(self, client, register, users, login):
        register()
        request_otp(client)
        before = users.find_one({"email": EMAIL})

        response = reset(client, "new-pass")
        assert response.status_code == 200
        assert response.get_json()["message"] == "Password updated successfully"

        after = users.find_one({"email": EMAIL})
        assert after["password"] != before["password"]
        assert verify_password("new-pass", after["password"])
        assert not verify_password(PASSWORD, after["password"])
        assert after["forgot_password_otp"] is None
        assert after["forgot_password_expiry"] is None
        assert login(password="new-pass")["accessToken"]

    def test_overlong_password_keeps_old_hash(self, client, register, users):
        register()
        before = users.find_one({"email": EMAIL})
        response = reset(client, "p" * 80)
        assert response.status_code == 400
        assert response.get_json()["message"] == "Password must be at most 72 bytes long"
        assert users.find_one({"email": EMAIL})["password"] == before["password"]

    def test_missing_fields(self, client):
        response = client.post("/api/user/reset-password", json={"email": EMAIL})
        assert response.status_code == 400
        assert response.get_json()["message"] == "Email and passwords are required"

    def test_unknown_email(self, client):
        response = reset(client, email="ghost@example.com")
        assert response.status_code == 404


class TestResetRequiringOtp:
    @pytest.fixture
    def client(self, settings, mailer):
        strict = replace(settings, reset_requires_otp=True)
        application = create_app(strict, database=mongomock.MongoClient().db, mailer=mailer)
        application.config["TESTING"] = True
        return application.test_client()

    @pytest.fixture
    def register(self, client):
        response = client.post(
            "/api/user/register",
            json={"name": "Jane", "email": EMAIL, "password": PASSWORD},
        )
        assert response.status_code == 201

    def test_otp_required(self, client, register):
        request_otp(client)
        response = reset(client)
        assert response.status_code == 400
        assert response.get_json()["message"] == "OTP is required to reset the password"

    def test_wrong_otp_rejected(self, client, register):
        request_otp(client)
        response = reset(client, otp="000000")
        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid OTP"

    def test_non_ascii_otp_rejected(self, client, register):
        request_otp(client)
        response = reset(client, otp="\u00e9t\u00e9")
        assert response.status_code == 400
        assert response.get_json()["message"] == "Invalid OTP"

    def test_expired_otp_rejected(self, client, register, mailer):
        with freeze_time("2026-03-01 10:00:00") as frozen:
            request_otp(client)
            otp = mailer.reset_emails[-1]["otp"]
            frozen.tick(timedelta(hours=2))
            response = reset(client, otp=otp)
        assert response.status_code == 400
        assert response.get_json()["message"] == "OTP has expired"

    def test_valid_otp_resets(self, client, register, mailer):
        request_otp(client)
        response = reset(client, otp=mailer.reset_emails[-1]["otp"])
        assert response.status_code == 200
