from html import escape
from typing import Dict, Optional, Tuple

import resend

brand_colors = {
    "text_primary": "#333333",
    "text_muted": "#555555",
    "panel_bg": "#f4f4f4",
    "panel_border": "#dddddd",
    "accent": "#007BFF",
}

VERIFY_EMAIL_SUBJECT = "Blinkeyit User Verification Email!"
FORGOT_PASSWORD_SUBJECT = "Blinkeyit - Password Reset OTP"


def build_verification_email_html(name: str, url: str) -> str:
    colors = brand_colors
    return f"""<div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;padding:20px;color:{colors['text_primary']};">
  <p style="font-weight:bold;font-size:16px;">Dear {escape(name or '')},</p>
  <p style="font-size:14px;line-height:1.5;">
    Thank you for registering on <strong>Blinkeyit</strong>! Please verify your email by clicking the button below.
  </p>
  <a href="{escape(url, quote=True)}" target="_blank" rel="noopener noreferrer"
     style="display:inline-block;padding:12px 25px;color:#ffffff;background-color:{colors['accent']};text-decoration:none;border-radius:5px;font-weight:bold;font-size:16px;margin-top:15px;">
    Verify Email
  </a>
  <p style="font-size:12px;color:{colors['text_muted']};margin-top:20px;">
    If you did not create an account, please ignore this email.
  </p>
</div>"""


def build_forgot_password_email_html(name: str, otp: str, expiration_minutes: int) -> str:
    colors = brand_colors
    return f"""<div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;padding:20px;color:{colors['text_primary']};">
  <p style="font-weight:bold;font-size:16px;">Dear {escape(name or '')},</p>
  <p style="font-size:14px;line-height:1.6;">
    You have requested to reset your password. Please use the following OTP to proceed:
  </p>
  <div style="background:{colors['panel_bg']};border:1px solid {colors['panel_border']};border-radius:6px;font-size:22px;padding:15px;text-align:center;font-weight:bold;color:#000000;">
    {escape(otp)}
  </div>
  <p style="font-size:13px;color:{colors['text_muted']};margin-top:20px;line-height:1.5;">
    This OTP is valid for <strong>{expiration_minutes} minutes only</strong>. Enter this OTP on the Blinkeyit website to reset your password.
  </p>
  <p style="font-size:13px;color:{colors['text_muted']};margin-top:20px;">
    Thanks,<br/><strong>Blinkeyit Team</strong>
  </p>
</div>"""


class Mailer:
    """Sends transactional mail through Resend.

    ``send`` never raises: it reports ``(sent, error_details)`` and leaves the
    caller to decide whether a failed delivery fails the request.
    """

    def __init__(self, api_key: str, sender: str):
        self.api_key = (api_key or "").strip()
        self.sender = sender

    def send(self, recipient: str, subject: str, html: str) -> Tuple[bool, Optional[str]]:
        if not self.api_key:
            return False, "Resend API key is not configured."

        payload: Dict[str, object] = {
            "from": self.sender,
            "to": [recipient],
            "subject": subject,
            "html": html,
        }

        previous_api_key = getattr(resend, "api_key", None)
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            return False, str(exc)
        finally:
            resend.api_key = previous_api_key

        response_id = (
            response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        )
        if not response_id:
            return False, str(response)

        return True, None

    def send_verification_email(self, recipient: str, name: str, url: str):
        return self.send(
            recipient, VERIFY_EMAIL_SUBJECT, build_verification_email_html(name, url)
        )

    def send_forgot_password_email(
        self, recipient: str, name: str, otp: str, expiration_minutes: int
    ):
        return self.send(
            recipient,
            FORGOT_PASSWORD_SUBJECT,
            build_forgot_password_email_html(name, otp, expiration_minutes),
        )
