"""Shared branded HTML shell for transactional emails."""

from html import escape


def branded_html(vars: dict, title: str, body: str) -> str:
    """Wrap ``body`` (already-escaped HTML) in the tenant's branded layout."""
    brand_name = escape(vars.get("brand_name", ""))
    primary_color = escape(vars.get("primary_color", "#F97316"))
    support_email = escape(vars.get("support_email", ""))
    logo_url = vars.get("logo_url")
    logo = (
        f'<img src="{escape(logo_url)}" alt="{brand_name}" style="max-height: 48px; margin-bottom: 16px;">'
        if logo_url
        else f'<h1 style="color: {primary_color}; margin: 0 0 16px;">{brand_name}</h1>'
    )

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #f4f4f4; padding: 20px; border-radius: 5px; border-top: 4px solid {primary_color};">
        {logo}
        {body}
    </div>
    <p style="margin-top: 20px; color: #999; font-size: 0.8em;">
        Questions? Contact <a href="mailto:{support_email}" style="color: {primary_color};">{support_email}</a><br>
        {brand_name}
    </p>
</body>
</html>
"""


def code_block(code: str, primary_color: str) -> str:
    return (
        f'<p style="font-size: 32px; letter-spacing: 8px; font-weight: bold; '
        f'color: {escape(primary_color)}; text-align: center; margin: 24px 0;">{escape(code)}</p>'
    )
