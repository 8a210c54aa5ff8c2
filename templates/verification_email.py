"""
Email content for verification and password-reset codes.

Each message has a plaintext part and an HTML part carrying the same wording.
"""
from dataclasses import dataclass
from html import escape
from typing import Optional

from models.email_verification import PURPOSE_RESET, PURPOSE_SIGNUP

PRODUCT_NAME = "Financial Assistant"
DEFAULT_GREETING_NAME = "there"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


_COPY = {
    PURPOSE_SIGNUP: {
        "subject": f"Verify Your Email - {PRODUCT_NAME}",
        "heading": "Email Verification",
        "intro": (
            f"Thank you for signing up for {PRODUCT_NAME}. To complete your registration, "
            "please verify your email address using the code below:"
        ),
        "action": "Enter this code in the verification form to activate your account.",
        "ignore": "If you didn't create an account, please ignore this email",
        "label": "Verification Code",
    },
    PURPOSE_RESET: {
        "subject": f"Reset Your Password - {PRODUCT_NAME}",
        "heading": "Password Reset",
        "intro": (
            f"We received a request to reset the password for your {PRODUCT_NAME} account. "
            "Use the code below to choose a new password:"
        ),
        "action": "Enter this code in the password reset form to continue.",
        "ignore": "If you didn't request a password reset, please ignore this email",
        "label": "Reset Code",
    },
}

_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{subject}</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: #f8f9fa; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
    .content {{ background: white; padding: 30px; border: 1px solid #e9ecef; }}
    .code-box {{ background: #f8f9fa; border: 2px solid #007bff; border-radius: 8px; padding: 20px; text-align: center; margin: 20px 0; }}
    .code {{ font-size: 32px; font-weight: bold; color: #007bff; letter-spacing: 4px; }}
    .footer {{ background: #f8f9fa; padding: 20px; text-align: center; border-radius: 0 0 8px 8px; font-size: 14px; color: #6c757d; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>{product}</h1>
      <p>{heading}</p>
    </div>
    <div class="content">
      <h2>Hello {name}!</h2>
      <p>{intro}</p>
      <div class="code-box">
        <div class="code">{code}</div>
      </div>
      <p>{action}</p>
      <p><strong>Important:</strong></p>
      <ul>
        <li>This code will expire in {expiry_minutes} minutes</li>
        <li>{ignore}</li>
        <li>Never share this code with anyone</li>
      </ul>
      <p>Best regards,<br>The {product} Team</p>
    </div>
    <div class="footer">
      <p>This is an automated message. Please do not reply to this email.</p>
    </div>
  </div>
</body>
</html>
"""

_TEXT = """{product} - {heading}

Hello {name}!

{intro}

{label}: {code}

{action}

Important:
- This code will expire in {expiry_minutes} minutes
- {ignore}
- Never share this code with anyone

Best regards,
The {product} Team

This is an automated message. Please do not reply to this email.
"""


def render_code_email(code: str, display_name: Optional[str] = None,
                      purpose: str = PURPOSE_SIGNUP, expiry_minutes: int = 10) -> RenderedEmail:
    wording = _COPY[purpose]
    name = (display_name or "").strip() or DEFAULT_GREETING_NAME
    fields = dict(wording, product=PRODUCT_NAME, code=code, expiry_minutes=expiry_minutes)
    text = _TEXT.format(name=name, **fields)
    html = _HTML.format(name=escape(name), **fields)
    return RenderedEmail(subject=wording["subject"], text=text, html=html)
