"""
Account lifecycle: registration, email verification, login/logout, profile
changes and OTP-based password recovery.

Every method touches exactly one account document, so no cross-document
transactions are needed. Concurrent writes to the same field (for example
login racing logout on ``refresh_token``) are last-write-wins.
"""

import hmac
import logging
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

from accounts import (
    DUPLICATE_EMAIL_MESSAGE,
    STATUS_ACTIVE,
    AccountPatch,
    AccountStore,
    utcnow,
)
from errors import (
    ConflictError,
    CredentialsError,
    DependencyError,
    NotFoundError,
    OtpExpiredError,
    OtpInvalidError,
    UnauthorizedError,
    ValidationError,
)
from security import generate_otp_code, hash_password, verify_password
from tokens import ACCESS, REFRESH, TokenIssuer
from uploads import ImagePayload, ImageStore

OTP_EXPIRATION_MINUTES = 60


class AccountService:
    def __init__(
        self,
        store: AccountStore,
        tokens: TokenIssuer,
        mailer,
        settings,
        image_store: ImageStore,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.settings = settings
        self.image_store = image_store
        self.logger = logger or logging.getLogger(__name__)

    # --- Registration & verification ---

    def build_verification_url(self, account_id) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/verify-email?code={account_id}"

    def register(self, name: str, email: str, password: str) -> Dict:
        if not name or not email or not password:
            raise ValidationError("Provide name, email and password")

        account = self.store.create(name, email, hash_password(password))
        self.logger.info("Registered account %s", account["_id"])

        # A failed delivery is logged; the account is not rolled back.
        sent, error_details = self.mailer.send_verification_email(
            email, name, self.build_verification_url(account["_id"])
        )
        if not sent:
            self.logger.warning(
                "Verification email delivery failed for account %s: %s",
                account["_id"],
                error_details or "Unknown delivery error",
            )

        return account

    def verify_email(self, code) -> bool:
        """Mark the account's email verified; returns ``False`` if it already was."""
        if not code:
            raise ValidationError("Provide a verification code.")

        account = self.store.find_by_id(code)
        if not account:
            raise ValidationError("Invalid or expired verification code.")

        if account.get("verify_email"):
            return False

        self.store.update_fields(account["_id"], {"verify_email": True})
        return True

    # --- Session ---

    def login(self, email: str, password: str) -> Tuple[str, str]:
        if not email or not password:
            raise ValidationError("Email and password are required")

        account = self.store.find_by_email(email)
        if not account:
            raise CredentialsError("User not registered!")

        if account.get("status") != STATUS_ACTIVE:
            raise CredentialsError(
                "Account is inactive or suspended. Please contact Admin."
            )

        if not verify_password(password, account.get("password")):
            raise CredentialsError("Invalid password. Please try again.")

        access_token = self.tokens.issue(account["_id"], ACCESS)
        refresh_token = self.tokens.issue(account["_id"], REFRESH)

        # Last login wins: the previous refresh token is simply overwritten.
        self.store.update_fields(
            account["_id"],
            {"refresh_token": refresh_token, "last_login_date": utcnow()},
        )
        self.logger.info("Login for account %s", account["_id"])
        return access_token, refresh_token

    def logout(self, user_id):
        if not user_id:
            raise UnauthorizedError("Unauthorized. User ID missing.")

        updated = self.store.update_fields(user_id, {"refresh_token": ""})
        if not updated:
            raise NotFoundError("User not found.")
        self.logger.info("Logout for account %s", user_id)

    # --- Profile ---

    def update_profile(self, user_id, patch: AccountPatch) -> Dict:
        if not user_id:
            raise UnauthorizedError("Unauthorized: User not found")

        if patch.is_empty():
            account = self.store.find_by_id(user_id)
            if not account:
                raise NotFoundError("User not found")
            return account

        updates: Dict[str, object] = {}
        if patch.name is not None:
            updates["name"] = patch.name
        if patch.email is not None:
            owner = self.store.find_by_email(patch.email)
            if owner and str(owner["_id"]) != str(user_id):
                raise ConflictError(DUPLICATE_EMAIL_MESSAGE)
            updates["email"] = patch.email
        if patch.mobile is not None:
            updates["mobile"] = patch.mobile
        if patch.password is not None:
            updates["password"] = hash_password(patch.password)

        account = self.store.update_fields(user_id, updates)
        if not account:
            raise NotFoundError("User not found")
        return account

    def upload_avatar(
        self, user_id, payload: Optional[ImagePayload], url_for: Callable[[str], str]
    ) -> Dict[str, str]:
        if not user_id:
            raise UnauthorizedError("Unauthorized: User not found")
        if payload is None:
            raise ValidationError("No image file uploaded")

        account = self.store.find_by_id(user_id)
        if not account:
            raise NotFoundError("User not found")

        filename, image_error = self.image_store.save(payload)
        if image_error:
            raise ValidationError(image_error)

        avatar_url = url_for(filename)
        updated = self.store.update_fields(user_id, {"avatar": avatar_url})
        if not updated:
            self.image_store.remove(filename)
            raise NotFoundError("User not found")

        previous_avatar = account.get("avatar") or ""
        if "/uploads/" in previous_avatar:
            self.image_store.remove(urlparse(previous_avatar).path.rsplit("/", 1)[-1])

        return {"_id": str(account["_id"]), "avatar": avatar_url}

    # --- Password recovery ---

    def forgot_password(self, email: str) -> None:
        if not email:
            raise ValidationError("Email is required")

        account = self.store.find_by_email(email)
        if not account:
            raise NotFoundError("User with this email does not exist")

        otp = generate_otp_code()
        expires_at = utcnow() + timedelta(minutes=OTP_EXPIRATION_MINUTES)
        self.store.update_fields(
            account["_id"],
            {"forgot_password_otp": otp, "forgot_password_expiry": expires_at},
        )

        # The OTP stays stored if delivery fails; the next request replaces it.
        sent, error_details = self.mailer.send_forgot_password_email(
            email, account.get("name", ""), otp, OTP_EXPIRATION_MINUTES
        )
        if not sent:
            self.logger.error(
                "Password reset email delivery failed for account %s: %s",
                account["_id"],
                error_details or "Unknown delivery error",
            )
            raise DependencyError("Failed to send OTP email")

    def check_otp(self, account: Dict, otp) -> None:
        expires_at = account.get("forgot_password_expiry")
        if expires_at is None or utcnow() > expires_at:
            raise OtpExpiredError("OTP has expired")

        stored_otp = account.get("forgot_password_otp")
        if stored_otp is None or not hmac.compare_digest(
            str(otp).strip().encode("utf-8"), str(stored_otp).strip().encode("utf-8")
        ):
            raise OtpInvalidError("Invalid OTP")

    def verify_forgot_password_otp(self, email: str, otp) -> None:
        """Check the code without consuming it; nothing is written."""
        if not email or otp in (None, ""):
            raise ValidationError("Email and OTP are required")

        account = self.store.find_by_email(email)
        if not account:
            raise NotFoundError("User with this email does not exist")

        self.check_otp(account, otp)

    def reset_password(
        self, email: str, new_password: str, confirm_password: str, otp=None
    ) -> None:
        if not email or not new_password or not confirm_password:
            raise ValidationError("Email and passwords are required")

        account = self.store.find_by_email(email)
        if not account:
            raise NotFoundError("User with this email does not exist")

        if self.settings.reset_requires_otp:
            if otp in (None, ""):
                raise ValidationError("OTP is required to reset the password")
            self.check_otp(account, otp)

        if new_password != confirm_password:
            raise ValidationError("New password and confirm password must be same")

        self.store.update_fields(
            account["_id"],
            {
                "password": hash_password(new_password),
                "forgot_password_otp": None,
                "forgot_password_expiry": None,
            },
        )
        self.logger.info("Password reset for account %s", account["_id"])
