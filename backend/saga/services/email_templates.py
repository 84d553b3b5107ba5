"""
Heimursaga API — Email Templates
==================================

Each template renders a subject, an HTML body and a plain-text body from a
variables dict. Variables are HTML-escaped before interpolation.

    render("welcome", {"username": "ana"}) -> RenderedEmail(subject, html, text)
"""

import html as html_lib
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from saga.config import settings


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class EmailTemplate:
    key: str
    subject: Callable[[Dict[str, Any]], str]
    body: Callable[[Dict[str, Any]], Tuple[str, List[Tuple[str, str]], Optional[Tuple[str, str]]]]


# ── Layout helpers ────────────────────────────────────────────────────────


def _esc(value: Any) -> str:
    return html_lib.escape("" if value is None else str(value))


def _link(path: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}{path}"


def _money(amount: Any, currency: Any = "$") -> str:
    try:
        return f"{currency}{float(amount):.2f}"
    except (TypeError, ValueError):
        return f"{currency}{amount}"


def _layout(heading: str, paragraphs: List[Tuple[str, str]], button: Optional[Tuple[str, str]]) -> str:
    parts = [
        "<div style=\"font-family: Helvetica, Arial, sans-serif; max-width: 600px; margin: 0 auto;\">",
        f"<h1 style=\"font-size: 20px; letter-spacing: 1px;\">{_esc(heading)}</h1>",
    ]
    for label, value in paragraphs:
        if label:
            parts.append(f"<p style=\"margin: 0 0 12px 0;\"><strong>{_esc(label)}:</strong> {_esc(value)}</p>")
        else:
            parts.append(f"<p style=\"margin: 0 0 16px 0; line-height: 1.6;\">{_esc(value)}</p>")
    if button:
        text, href = button
        parts.append(
            f"<p><a href=\"{_esc(href)}\" style=\"background: #AC6D46; color: #ffffff; "
            f"padding: 12px 24px; text-decoration: none;\">{_esc(text)}</a></p>"
        )
    parts.append("<p style=\"color: #888; font-size: 12px;\">Heimursaga</p></div>")
    return "\n".join(parts)


def _plain(heading: str, paragraphs: List[Tuple[str, str]], button: Optional[Tuple[str, str]]) -> str:
    lines = [heading, ""]
    for label, value in paragraphs:
        lines.append(f"{label}: {value}" if label else str(value))
    if button:
        lines.extend(["", f"{button[0]}: {button[1]}"])
    return "\n".join(lines)


# ── Templates ─────────────────────────────────────────────────────────────


def _welcome(v):
    return (
        "WELCOME TO HEIMURSAGA",
        [
            ("", f"Hi {v.get('username', 'explorer')},"),
            ("", "Your account is ready. Start documenting your journeys and follow other explorers."),
        ],
        ("Open Heimursaga", _link("/")),
    )


def _password_reset(v):
    return (
        "PASSWORD RESET",
        [
            ("", "We received a request to reset your password."),
            ("", f"The link expires in {settings.password_reset_ttl_hours} hours. If you did not request it, ignore this email."),
        ],
        ("Reset password", v.get("reset_link") or _link("/reset-password")),
    )


def _email_verification(v):
    return (
        "VERIFY YOUR EMAIL",
        [("", f"Hi {v.get('username', 'explorer')}, please confirm your email address.")],
        ("Verify email", v.get("verification_link") or _link("/verify-email")),
    )


def _new_entry_notification(v):
    paragraphs = [
        ("", f"{v.get('author_username')} published a new entry."),
        ("Title", v.get("entry_title", "")),
    ]
    if v.get("location"):
        paragraphs.append(("Location", v["location"]))
    if v.get("excerpt"):
        paragraphs.append(("", v["excerpt"]))
    return ("NEW JOURNAL ENTRY", paragraphs, ("Read entry", _link(f"/entries/{v.get('entry_id', '')}")))


def _sponsorship_received(v):
    paragraphs = [
        ("", f"{v.get('sponsor_username')} sponsored you."),
        ("Amount", _money(v.get("amount"), v.get("currency", "$"))),
    ]
    if v.get("message"):
        paragraphs.append(("Message", v["message"]))
    return ("NEW SPONSORSHIP", paragraphs, ("View sponsorships", _link("/sponsorships")))


def _upgrade_confirmation(v):
    return (
        "WELCOME TO EXPLORER PRO",
        [
            ("", f"Hi {v.get('username', 'explorer')}, your Explorer Pro plan is active."),
            ("Plan", v.get("period", "month")),
            ("Amount", _money(v.get("amount"), "$")),
        ],
        ("Set up payouts", _link("/settings/payouts")),
    )


def _sponsorship_auto_canceled(v):
    return (
        "SPONSORSHIP CANCELED",
        [
            ("", f"Your monthly sponsorship of {v.get('explorer_username')} was canceled automatically "
                 f"because they have not had an active expedition for {v.get('days_resting', settings.resting_cancel_days)} days."),
            ("", "You have not been charged since the sponsorship was paused."),
        ],
        None,
    )


def _admin_new_user_signup(v):
    return (
        "NEW USER SIGNUP",
        [
            ("", "A new user has signed up for Heimursaga."),
            ("Username", v.get("username", "")),
            ("Email", v.get("email", "")),
            ("Signup date", v.get("signup_date", "")),
        ],
        ("View profile", _link(f"/{v.get('username', '')}")),
    )


def _admin_dispute_created(v):
    return (
        "PAYMENT DISPUTE OPENED",
        [
            ("Dispute", v.get("dispute_id", "")),
            ("Charge", v.get("charge_id", "")),
            ("Amount", _money(v.get("amount"), "$")),
            ("Reason", v.get("reason", "")),
        ],
        None,
    )


TEMPLATES: Dict[str, EmailTemplate] = {
    t.key: t
    for t in (
        EmailTemplate("welcome", lambda v: "Welcome to Heimursaga", _welcome),
        EmailTemplate("password_reset", lambda v: "Password Reset Request", _password_reset),
        EmailTemplate("email_verification", lambda v: "Verify Your Email Address", _email_verification),
        EmailTemplate(
            "new_entry_notification",
            lambda v: f"{v.get('author_username')} published: {v.get('entry_title')}",
            _new_entry_notification,
        ),
        EmailTemplate(
            "sponsorship_received",
            lambda v: f"You received a {_money(v.get('amount'), v.get('currency', '$'))} sponsorship from {v.get('sponsor_username')}",
            _sponsorship_received,
        ),
        EmailTemplate("upgrade_confirmation", lambda v: "Welcome to EXPLORER PRO", _upgrade_confirmation),
        EmailTemplate(
            "sponsorship_auto_canceled",
            lambda v: f"Your sponsorship of {v.get('explorer_username')} was canceled",
            _sponsorship_auto_canceled,
        ),
        EmailTemplate(
            "admin_new_user_signup",
            lambda v: f"New user signup: {v.get('username')}",
            _admin_new_user_signup,
        ),
        EmailTemplate(
            "admin_dispute_created",
            lambda v: f"Payment dispute opened: {v.get('dispute_id')}",
            _admin_dispute_created,
        ),
    )
}


def render(key: str, variables: Optional[Dict[str, Any]] = None) -> Optional[RenderedEmail]:
    """Render a template by key; None when the key is unknown."""
    template = TEMPLATES.get(key)
    if template is None:
        return None
    v = variables or {}
    heading, paragraphs, button = template.body(v)
    return RenderedEmail(
        subject=template.subject(v),
        html=_layout(heading, paragraphs, button),
        text=_plain(heading, paragraphs, button),
    )
