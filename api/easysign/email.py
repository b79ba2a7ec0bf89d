import logging
import os
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape

SMTP_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("EMAIL_PORT", "587"))
SMTP_USER = os.getenv("EMAIL_USER")
SMTP_PASSWORD = os.getenv("EMAIL_PASSWORD")
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", SMTP_USER or "noreply@example.com")
DEFAULT_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "EasySign")

logger = logging.getLogger(__name__)

def build_invitation(signer_name: str, signer_email: str, filename: str, link: str,
                     subject: str | None = None, message: str | None = None):
    subject_line = (subject or "").strip() or "Please sign the document"
    greeting = signer_name or signer_email
    lines = [f"Hi {greeting},", "", f"You have been invited to sign the document “{filename}”."]
    if message:
        lines += ["", message]
    lines += ["", f"Review & sign: {link}", ""]
    text_body = "\n".join(lines)
    link_html = escape(link)
    message_html = f"<p>{escape(message)}</p>" if message else ""
    html_body = f"""
<html>
  <body style="font-family: Inter, Arial, sans-serif; line-height: 1.6; color: #111;">
    <h2>Hi {escape(greeting)},</h2>
    <p>You have been invited to sign the document <strong>{escape(filename)}</strong>.</p>
    {message_html}
    <p>
      <a href="{link_html}" style="display: inline-block; background: #111; color: #fff; padding: 10px 16px; border-radius: 8px; text-decoration: none;">Review &amp; Sign</a>
    </p>
    <p style="font-size: 12px; color: #666;">If the button doesn&apos;t work, copy and paste this link into your browser:<br />
      <span style="word-break: break-all;">{link_html}</span>
    </p>
  </body>
</html>
"""
    return subject_line, text_body, html_body

def _compose(to: str, subject: str, body: str, html_body: str | None,
             sender: str, reply_to: str | None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg

def send_email(
    to: str,
    subject: str,
    body: str,
    html_body: str | None = None,
    sender_name: str | None = None,
    reply_to: str | None = None,
):
    display_name = (sender_name or DEFAULT_SENDER_NAME).strip()
    sender = formataddr((display_name, DEFAULT_SENDER)) if display_name else DEFAULT_SENDER
    msg = _compose(to, subject, body, html_body, sender, reply_to)
    if not (SMTP_USER and SMTP_PASSWORD):
        # no credentials configured: log instead of delivering
        logger.info("email (not sent) to=%s subject=%r\n%s", to, subject, body)
        return
    with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as smtp:
        smtp.starttls()
        smtp.login(SMTP_USER, SMTP_PASSWORD)
        smtp.send_message(msg)
