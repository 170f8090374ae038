from __future__ import annotations

import smtplib
from email.message import EmailMessage as PyEmailMessage
from email.utils import make_msgid, formatdate
from typing import Iterable, Optional


def _text_to_html(body_text: str) -> str:
    """Wrap a plain report in a minimal HTML body, keeping line breaks."""
    import html

    escaped = html.escape(body_text).replace("\n", "<br>\n")
    return (
        "<html><body style=\"font-family: Arial, sans-serif\">"
        f"<div style=\"max-width: 600px; margin: 0 auto\">{escaped}</div>"
        "</body></html>"
    )


def build_message(
    *,
    from_email: str,
    to_emails: list[str],
    subject: str,
    body_text: str = "",
    body_html: str = "",
) -> PyEmailMessage:
    msg = PyEmailMessage()
    msg["From"] = from_email
    msg["To"] = ", ".join(to_emails)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=None)

    msg.set_content(body_text or " ")
    body_html = body_html or (_text_to_html(body_text) if body_text else "")
    if body_html:
        msg.add_alternative(body_html, subtype="html")

    return msg

def send_smtp(
    *,
    host: str,
    port: int,
    use_tls: bool,
    username: str,
    password: str,
    msg: PyEmailMessage,
    envelope_from: Optional[str] = None,
    envelope_to: Optional[Iterable[str]] = None,
    timeout: float = 30,
) -> None:
    envelope_from = envelope_from or msg.get("From")
    if envelope_to:
        tos = list(envelope_to)
    else:
        tos = [x.strip() for x in (msg.get("To") or "").split(",") if x.strip()]

    with smtplib.SMTP(host, port, timeout=timeout) as s:
        s.ehlo()
        if use_tls:
            s.starttls()
            s.ehlo()
        if username:
            s.login(username, password)
        s.send_message(msg, from_addr=envelope_from, to_addrs=tos)
