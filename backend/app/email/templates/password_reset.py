"""Password reset code email."""

from html import escape

from app.email.templates._layout import branded_html, code_block


def render_subject(vars: dict) -> str:
    return f"Reset your {vars.get('brand_name', '')} password"


def render_text(vars: dict) -> str:
    """
    Render password reset email text template.

    Args:
        vars: Template variables (code, expires_minutes, brand_name)

    Returns:
        Plain text email body
    """
    return f"""You requested a password reset for your {vars.get("brand_name", "")} account.

Enter this code to choose a new password:

{vars.get("code", "")}

This code will expire in {vars.get("expires_minutes", 15)} minutes.

If you did not request this reset, please ignore this email.

---
{vars.get("brand_name", "")}
"""


def render_html(vars: dict) -> str:
    """
    Render password reset email HTML template.

    Args:
        vars: Template variables (code, expires_minutes, brand_name, primary_color)

    Returns:
        HTML email body
    """
    body = f"""<h2 style="color: #333;">Password Reset Request</h2>
        <p>You requested a password reset for your {escape(vars.get("brand_name", ""))} account.</p>
        <p>Enter this code to choose a new password:</p>
        {code_block(vars.get("code", ""), vars.get("primary_color", "#F97316"))}
        <p style="color: #666; font-size: 0.9em;">This code will expire in {vars.get("expires_minutes", 15)} minutes.</p>
        <p style="color: #666; font-size: 0.9em;">If you did not request this reset, please ignore this email.</p>"""
    return branded_html(vars, "Password Reset", body)
