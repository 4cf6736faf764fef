"""
Email HTML Templates

Branded campaign layout with open tracking (the logo is served through
the track-open endpoint) and click tracking (links are rewritten through
track-click).
"""

import html
import re
from typing import Optional
from urllib.parse import quote


TRACK_OPEN_PATH = "/api/admin/email/track-open"
TRACK_CLICK_PATH = "/api/admin/email/track-click"
LOGO_PATH = "/App%20Ideas%20Finder%20-%20logo%20-%20200x200.png"

_LINK_PATTERN = re.compile(
    r"""<a\s+([^>]*\s+)?href=["']([^"']+)["']([^>]*)>""",
    re.IGNORECASE,
)


def logo_url(site_url: str) -> str:
    return f"{site_url}{LOGO_PATH}"


def track_links(html_content: str, tracking_token: str, site_url: str) -> str:
    """Route every link except mailto: and existing tracking links through track-click."""

    def rewrite(match: re.Match) -> str:
        before, url, after = match.group(1) or "", match.group(2), match.group(3) or ""
        if TRACK_CLICK_PATH in url or url.startswith("mailto:"):
            return match.group(0)
        tracked = (
            f"{site_url}{TRACK_CLICK_PATH}?token={tracking_token}"
            f"&url={quote(url, safe='')}"
        )
        return f'<a {before}href="{tracked}"{after}>'

    return _LINK_PATTERN.sub(rewrite, html_content)


def render_campaign_html(
    html_content: str,
    site_url: str,
    tracking_token: Optional[str] = None,
) -> str:
    """Wrap a campaign body in the branded layout."""
    if tracking_token:
        header_logo = f"{site_url}{TRACK_OPEN_PATH}?token={tracking_token}"
        body = track_links(html_content, tracking_token, site_url)
    else:
        header_logo = logo_url(site_url)
        body = html_content

    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>App Ideas Finder</title>
  </head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0;">
    <table width="100%" cellpadding="0" cellspacing="0" border="0">
      <tr>
        <td align="center" style="padding: 20px;">
          <table width="600" cellpadding="0" cellspacing="0" border="0" style="max-width: 600px;">
            <tr>
              <td style="text-align: center; padding: 20px 0; border-bottom: 3px solid #f78937;">
                <img src="{header_logo}" alt="App Ideas Finder Logo" width="80" height="80" style="display: block; margin: 0 auto 15px auto; border: 0;">
                <h1 style="color: #0a3a5f; margin: 0; font-size: 24px;">App Ideas Finder</h1>
                <p style="color: #666; margin: 5px 0 0 0; font-size: 14px;">Discover your next app idea in seconds</p>
              </td>
            </tr>
            <tr>
              <td style="padding: 30px 20px;">
                {body}
              </td>
            </tr>
            <tr>
              <td style="text-align: center; padding: 30px 20px; border-top: 1px solid #e0e0e0;">
                <p style="color: #888; font-size: 11px;">We respect your privacy. No spam, ever.</p>
                <p><a href="{site_url}/unsubscribe" style="color: #999; font-size: 10px;">Unsubscribe</a></p>
                <p style="color: #999; font-size: 11px; margin: 0;">&copy; App Ideas Finder. All rights reserved.</p>
              </td>
            </tr>
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>"""


def render_admin_alert(title: str, fields: dict[str, Optional[str]], body: Optional[str] = None) -> str:
    """Plain internal notification listing ``fields`` and an optional message body."""
    rows = "".join(
        f"<p><strong>{html.escape(label)}:</strong> {html.escape(value or '-')}</p>"
        for label, value in fields.items()
    )
    message = ""
    if body:
        message = (
            '<div style="background: #f5f5f5; padding: 12px; border-radius: 6px;">'
            f"{html.escape(body).replace(chr(10), '<br>')}</div>"
        )
    return f"<h2>{html.escape(title)}</h2>{rows}{message}"
