# app/utils/email_templates.py

from html import escape
from typing import Optional

from app.core.config import FIRM_NAME
from app.utils.date_utils import format_date

REMINDER_SUBJECTS = {
    "gentle": "Your upcoming appointment",
    "moderate": "Reminder: your appointment is approaching",
    "firm": "Reminder: your appointment is next week",
    "urgent": "Your appointment is tomorrow",
}

PAGE_COLORS = {
    "success": "#16a34a",
    "error": "#dc2626",
    "warning": "#f59e0b",
}


def _layout(heading: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; background-color: #f8fafc; padding: 20px; margin: 0;">
  <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden;">
    <div style="background: #1e40af; padding: 24px; text-align: center;">
      <h1 style="color: white; margin: 0; font-size: 20px;">{escape(FIRM_NAME)}</h1>
      <p style="color: #bfdbfe; margin: 8px 0 0; font-size: 14px;">{escape(heading)}</p>
    </div>
    <div style="padding: 30px; color: #334155; font-size: 15px; line-height: 1.6;">
{content}
    </div>
  </div>
</body>
</html>"""


def client_display_name(client: dict) -> str:
    owner = client.get("owner") or {}
    return owner.get("name") or client.get("manager_name") or client.get("company_name") or "Client"


def _details_block(date: str, time: str, location: Optional[str]) -> str:
    return (
        '<div style="background: #f0f9ff; border-left: 4px solid #3b82f6; padding: 16px; margin: 20px 0;">'
        f"<p style=\"margin: 0;\"><strong>{escape(format_date(date))}</strong> at <strong>{escape(time)}</strong><br/>"
        f"{escape(location or 'Location to be confirmed')}</p></div>"
    )


def build_invitation_email(
        client_name: str,
        company_name: str,
        date: str,
        time: str,
        location: Optional[str],
        consultant_name: str,
        confirm_url: str,
        propose_url: str
) -> str:
    content = f"""
      <p>Dear <strong>{escape(client_name)}</strong>,</p>
      <p>Your consultant proposes a meeting to review the results of <strong>{escape(company_name or '')}</strong>.</p>
      {_details_block(date, time, location)}
      <p>With: {escape(consultant_name)}</p>
      <p style="text-align: center; margin: 32px 0;">
        <a href="{escape(confirm_url)}" style="background: #16a34a; color: white; padding: 12px 28px; border-radius: 8px; text-decoration: none;">Confirm this appointment</a>
        <br/><br/>
        <a href="{escape(propose_url)}" style="background: #f59e0b; color: white; padding: 12px 28px; border-radius: 8px; text-decoration: none;">Propose another date</a>
      </p>
      <p style="color: #94a3b8; font-size: 13px;">Please fill in your dashboard before the meeting so we can review it together.</p>"""
    return _layout("Your next appointment", content)


def build_confirmed_notice(client_name: str, company_name: str, date: str, time: str) -> str:
    content = (
        f"<p><strong>{escape(client_name)}</strong> ({escape(company_name or '')}) confirmed the appointment on "
        f"<strong>{escape(format_date(date))}</strong> at <strong>{escape(time)}</strong>.</p>"
    )
    return _layout("Appointment confirmed", content)


def build_change_request_notice(
        client_name: str,
        company_name: str,
        current_date: str,
        current_time: str,
        proposed_date: str,
        proposed_time: str
) -> str:
    content = f"""
      <p><strong>{escape(client_name)}</strong> ({escape(company_name or '')}) would like to move their appointment.</p>
      <p><strong>Current:</strong> {escape(format_date(current_date))} at {escape(current_time)}</p>
      <p><strong>Proposed:</strong> {escape(format_date(proposed_date))} at {escape(proposed_time)}</p>
      <p>Sign in to the portal to accept the new date or reschedule.</p>"""
    return _layout("Change requested", content)


def build_reminder_email(
        client_name: str,
        company_name: str,
        date: str,
        time: str,
        location: Optional[str],
        days_until: int,
        level: str
) -> str:
    when = "tomorrow" if days_until == 1 else f"in {days_until} days"
    content = f"""
      <p>Dear <strong>{escape(client_name)}</strong>,</p>
      <p>Your appointment for <strong>{escape(company_name or '')}</strong> is {when}.</p>
      {_details_block(date, time, location)}
      <p>Remember to fill in your dashboard beforehand.</p>"""
    return _layout(REMINDER_SUBJECTS[level], content)


def build_consultant_eve_notice(company_name: str, date: str, time: str) -> str:
    content = (
        f"<p><strong>{escape(company_name or '')}</strong> has an appointment tomorrow, "
        f"<strong>{escape(format_date(date))}</strong> at <strong>{escape(time)}</strong>.</p>"
    )
    return _layout("Appointment tomorrow", content)


def build_result_page(title: str, message: str, kind: str = "success") -> str:
    """Landing page for the anonymous email links. ``message`` is plain text."""
    color = PAGE_COLORS.get(kind, PAGE_COLORS["warning"])
    content = (
        f'<h2 style="color: {color}; margin-top: 0;">{escape(title)}</h2>'
        f"<p>{escape(message)}</p>"
        '<p style="color: #94a3b8; font-size: 12px;">You can close this page.</p>'
    )
    return _layout(title, content)


def build_propose_form_page(token: str, date: str, time: str, location: Optional[str], min_date: str) -> str:
    content = f"""
      <p><strong>Current appointment:</strong></p>
      {_details_block(date, time, location)}
      <form method="POST" action="/links/propose">
        <input type="hidden" name="token" value="{escape(token)}" />
        <label style="display: block; font-weight: 600; margin-bottom: 6px;">Preferred date</label>
        <input type="date" name="proposed_date" min="{escape(min_date)}" required style="width: 100%; padding: 10px; margin-bottom: 16px;" />
        <label style="display: block; font-weight: 600; margin-bottom: 6px;">Preferred time</label>
        <input type="time" name="proposed_time" value="09:00" required style="width: 100%; padding: 10px; margin-bottom: 20px;" />
        <button type="submit" style="width: 100%; background: #1e40af; color: white; padding: 12px; border: none; border-radius: 8px;">Send my proposal</button>
      </form>"""
    return _layout("Propose another date", content)
