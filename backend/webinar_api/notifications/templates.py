"""
HTML bodies for attendee e-mails.

Each builder returns (subject, html). Values coming from users or admins are
escaped; the layout is a single inline-styled block so it survives most mail
clients.
"""

from datetime import datetime
from html import escape
from typing import Optional

from webinar_api.core.clock import to_local

_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; color: #333; background: #f4f4f4; padding: 24px;">
  <div style="max-width: 600px; margin: 0 auto; background: #fff; padding: 32px; border-radius: 8px;">
    <h1 style="font-size: 22px; color: {accent};">{heading}</h1>
    {body}
    <p style="font-size: 12px; color: #999; margin-top: 32px;">{footer}</p>
  </div>
</body>
</html>
"""


def format_webinar_date(value: datetime, tz_name: str) -> str:
    local = to_local(value, tz_name)
    return local.strftime("%A %d %B %Y at %H:%M (%Z)")


def _button(url: str, label: str) -> str:
    return (
        f'<p style="text-align: center; margin: 28px 0;">'
        f'<a href="{escape(url, quote=True)}" style="background: #4CAF50; color: #fff; '
        f'padding: 12px 24px; border-radius: 4px; text-decoration: none;">{escape(label)}</a></p>'
    )


def _render(title: str, heading: str, body: str, footer: str, accent: str = "#4CAF50") -> str:
    return _LAYOUT.format(
        title=escape(title), heading=escape(heading), body=body, footer=escape(footer), accent=accent
    )


def registration_confirmation(
    user_name: str,
    webinar_title: str,
    webinar_date: datetime,
    meet_link: str,
    tz_name: str,
    company_name: str,
    has_invoice: bool = False,
) -> tuple[str, str]:
    subject = f"Registration confirmed - {webinar_title}"
    invoice_note = (
        "<p>Your invoice is attached to this e-mail.</p>" if has_invoice else ""
    )
    body = (
        f"<p>Hello {escape(user_name)},</p>"
        f"<p>Your registration for <strong>{escape(webinar_title)}</strong> is confirmed.</p>"
        f"<p><strong>Date:</strong> {escape(format_webinar_date(webinar_date, tz_name))}</p>"
        f"{_button(meet_link, 'Join the webinar')}"
        f"<p>Meeting link: <a href=\"{escape(meet_link, quote=True)}\">{escape(meet_link)}</a></p>"
        f"{invoice_note}"
        "<p>You will receive a reminder the day before the session.</p>"
    )
    return subject, _render(subject, "Registration confirmed", body, company_name)


def webinar_reminder(
    user_name: str,
    webinar_title: str,
    webinar_date: datetime,
    meet_link: Optional[str],
    tz_name: str,
    company_name: str,
) -> tuple[str, str]:
    subject = f"Reminder: {webinar_title} - tomorrow!"
    link_block = (
        _button(meet_link, "Join the webinar")
        + f"<p>Meeting link: <a href=\"{escape(meet_link, quote=True)}\">{escape(meet_link)}</a></p>"
        if meet_link
        else "<p>The meeting link will be sent to you shortly.</p>"
    )
    body = (
        f"<p>Hello {escape(user_name)},</p>"
        f"<p>This is a reminder that <strong>{escape(webinar_title)}</strong> takes place tomorrow.</p>"
        f"<p><strong>Date:</strong> {escape(format_webinar_date(webinar_date, tz_name))}</p>"
        f"{link_block}"
        "<p>We recommend joining a few minutes early to check your audio and video.</p>"
    )
    return subject, _render(subject, "See you tomorrow", body, company_name, accent="#FF9800")


def registration_cancelled(
    user_name: str,
    webinar_title: str,
    company_name: str,
    reason: Optional[str] = None,
) -> tuple[str, str]:
    subject = f"Cancellation - {webinar_title}"
    reason_block = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    body = (
        f"<p>Hello {escape(user_name)},</p>"
        f"<p>Your registration for <strong>{escape(webinar_title)}</strong> has been cancelled.</p>"
        f"{reason_block}"
        "<p>If this is a mistake, you can register again at any time while seats remain.</p>"
    )
    return subject, _render(subject, "Registration cancelled", body, company_name, accent="#f44336")
