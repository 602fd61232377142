"""
HTML email templates for escalation notifications.

Each builder returns ``(subject, body)``. Interpolated values are
HTML-escaped.
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional, Tuple

SYSTEM_NAME = "Hostel Escalation System"

NEW_ESCALATION = "new-escalation"
TEAM_MEMBER_ASSIGNMENT = "team-member-assignment"
STATUS_UPDATE = "escalation-status-update"
INVITATION = "employee-invitation"

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: {color}; padding: 20px; border-radius: 8px; margin-bottom: 20px; color: white; text-align: center; }}
        .highlight {{ font-weight: bold; }}
        .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #dee2e6; text-align: center; }}
        .action-button {{ display: inline-block; background-color: #28a745; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; margin-top: 20px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h2>{system}</h2>
            <h2>{title}</h2>
        </div>
        {content}
        <div class="footer">
            <p>Thank you,<br><strong>{system}</strong></p>
            <p><small>This is an automated message from the Hostel Office. Please do not reply to this email.</small></p>
        </div>
    </div>
</body>
</html>
"""


def _render(title: str, color: str, content: str) -> str:
    return _LAYOUT.format(system=SYSTEM_NAME, title=escape(title), color=color, content=content)


def _details(*rows: Tuple[str, str]) -> str:
    items = "\n".join(
        f'<li><strong>{escape(label)}:</strong> <span class="highlight">{escape(value)}</span></li>'
        for label, value in rows
    )
    return f"<ul>\n{items}\n</ul>"


def _timestamp(when: Optional[datetime] = None) -> str:
    return (when or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")


def new_escalation(escalation_id: str, student_name: str, department: str) -> Tuple[str, str]:
    """Notice to the supervisor a new ticket was routed to."""
    subject = f"New Escalation Assigned: #{escalation_id}"
    content = (
        "<p>Dear Supervisor,</p>"
        "<p>A new escalation has been assigned to your department.</p>"
        + _details(
            ("Escalation ID", f"#{escalation_id}"),
            ("Department", department),
            ("Student", student_name),
            ("Created on", _timestamp()),
        )
        + "<p>Please review this escalation and assign a team member if needed.</p>"
    )
    return subject, _render("New Escalation", "#dc3545", content)


def team_member_assignment(escalation_id: str, student_name: str, department: str,
                           supervisor_name: str, description: str) -> Tuple[str, str]:
    """Task notice to a front-line team member."""
    subject = f"New Task Assignment: Escalation #{escalation_id}"
    content = (
        "<p>Dear Team Member,</p>"
        f"<p>You have been assigned a new escalation task by "
        f'<span class="highlight">{escape(supervisor_name)}</span> (Supervisor).</p>'
        + _details(
            ("Escalation ID", f"#{escalation_id}"),
            ("Department", department),
            ("Student", student_name),
            ("Assigned by", supervisor_name),
            ("Assigned on", _timestamp()),
        )
        + f"<h3>Description:</h3><p>{escape(description)}</p>"
        "<p>Please review this escalation and begin working on it. "
        "You can update the status as you progress.</p>"
    )
    return subject, _render("New Task Assignment", "#007bff", content)


def status_update(escalation_id: str, student_name: str, department: str,
                  old_status: str, new_status: str, updated_by: str) -> Tuple[str, str]:
    """Status change notice to the oversight recipients."""
    subject = f"Escalation Status Updated: #{escalation_id}"
    content = (
        "<p>Dear Hostel Office Team,</p>"
        "<p>An escalation status has been updated and requires your attention.</p>"
        + _details(
            ("Escalation ID", f"#{escalation_id}"),
            ("Department", department),
            ("Student", student_name),
            ("Status Change", f"{old_status} → {new_status}"),
            ("Updated by", updated_by),
            ("Updated on", _timestamp()),
        )
        + "<p>Please review this status change and take any necessary follow-up actions.</p>"
    )
    return subject, _render("Escalation Status Update", "#28a745", content)


def invitation(name: str, reset_link: str) -> Tuple[str, str]:
    """Welcome message carrying the link to choose a password."""
    subject = f"Welcome to the {SYSTEM_NAME}"
    content = (
        f"<p>Dear {escape(name)},</p>"
        "<p>An account has been created for you. Use the button below to set your password.</p>"
        f'<p><a class="action-button" href="{escape(reset_link, quote=True)}">Set your password</a></p>'
        "<p>If you did not expect this invitation, you can ignore this email.</p>"
    )
    return subject, _render("Account Invitation", "#6f42c1", content)
