"""Signup confirmation code email."""

from html import escape

from app.email.templates._layout import branded_html, code_block


def render_subject(vars: dict) -> str:
    return f"Your {vars.get('brand_name', '')} verification code"


def render_text(vars: dict) -> str:
    """
    Render signup confirmation email text template.

    Args:
        vars: Template variables (code, expires_minutes, first_name, brand_name, support_email)
    """
    first_name = vars.get("first_name") or "there"
    return f"""Hi {first_name},

Welcome to {vars.get("brand_name", "")}! Enter this code to confirm your email address:

{vars.get("code", "")}

This code will expire in {vars.get("expires_minutes", 15)} minutes.

If you did not create an account, you can ignore this email.

---
{vars.get("brand_name", "")}
{vars.get("support_email", "")}
"""


def render_html(vars: dict) -> str:
    """Render signup confirmation email HTML template."""
    first_name = escape(vars.get("first_name") or "there")
    body = f"""<h2 style="color: #333;">Confirm your email</h2>
        <p>Hi {first_name},</p>
        <p>Welcome to {escape(vars.get("brand_name", ""))}! Enter this code to confirm your email address:</p>
        {code_block(vars.get("code", ""), vars.get("primary_color", "#F97316"))}
        <p style="color: #666; font-size: 0.9em;">This code will expire in {vars.get("expires_minutes", 15)} minutes.</p>
        <p style="color: #666; font-size: 0.9em;">If you did not create an account, you can ignore this email.</p>"""
    return branded_html(vars, "Confirm your email", body)
