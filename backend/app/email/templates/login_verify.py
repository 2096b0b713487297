"""Sign-in verification code email (for the reserved ``login_verify`` purpose)."""

from app.email.templates._layout import branded_html, code_block


def render_subject(vars: dict) -> str:
    return f"Your {vars.get('brand_name', '')} sign-in code"


def render_text(vars: dict) -> str:
    return f"""Use this code to finish signing in:

{vars.get("code", "")}

This code will expire in {vars.get("expires_minutes", 15)} minutes. If this wasn't you, change your password.

---
{vars.get("brand_name", "")}
"""


def render_html(vars: dict) -> str:
    body = f"""<h2 style="color: #333;">Sign-in code</h2>
        <p>Use this code to finish signing in:</p>
        {code_block(vars.get("code", ""), vars.get("primary_color", "#F97316"))}
        <p style="color: #666; font-size: 0.9em;">This code will expire in {vars.get("expires_minutes", 15)} minutes. If this wasn't you, change your password.</p>"""
    return branded_html(vars, "Sign-in code", body)
