"""Email templates, keyed by one-time code purpose."""

from app.email.templates import confirm_signup, login_verify, password_reset

TEMPLATES = {
    "confirm_signup": {
        "subject": confirm_signup.render_subject,
        "text": confirm_signup.render_text,
        "html": confirm_signup.render_html,
    },
    "password_reset": {
        "subject": password_reset.render_subject,
        "text": password_reset.render_text,
        "html": password_reset.render_html,
    },
    "login_verify": {
        "subject": login_verify.render_subject,
        "text": login_verify.render_text,
        "html": login_verify.render_html,
    },
}


def render_template(template_key: str, vars: dict, format: str = "text") -> str:
    """
    Render email template.

    Args:
        template_key: Template identifier (an OTP purpose)
        vars: Template variables
        format: "subject", "text" or "html"

    Returns:
        Rendered template string
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template key: {template_key}")

    template_func = TEMPLATES[template_key].get(format)
    if not template_func:
        raise ValueError(f"Template {template_key} does not support format {format}")

    return template_func(vars)
