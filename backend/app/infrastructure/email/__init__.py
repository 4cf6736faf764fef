from app.infrastructure.email.email_service import EmailService, get_email_service
from app.infrastructure.email.templates import render_campaign_html, track_links

__all__ = ["EmailService", "get_email_service", "render_campaign_html", "track_links"]
