"""Branded HTML email templates.

Message bodies are written in Markdown and rendered twice: once as styled
HTML inside the branded layout, once as plain text for the text/plain
alternative. Styles are inlined on every element because most mail clients
ignore ``<style>`` blocks.
"""

import html
import re
from datetime import datetime
from typing import Optional, Tuple

import markdown

BRAND_NAME = "Plazen"
BRAND_URL = "https://plazen.org"
BRAND_DOMAIN = "Plazen.org"
LOGO_URL = "https://avatars.githubusercontent.com/u/226096442?s=200&v=4"
SCHEDULE_URL = "https://plazen.org/schedule"

FONT_STACK = "'Lexend', -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif"

# Inline style per rendered tag
_INLINE_STYLES = {
    "p": "font-size: 16px; line-height: 1.6; color: #B0B0C0; margin-bottom: 16px;",
    "a": "color: #2DD4BF; text-decoration: none;",
    "code": (
        "background-color: #1a1d24; padding: 2px 6px; border-radius: 4px; "
        "font-family: monospace; font-size: 14px; color: #2DD4BF;"
    ),
    "pre": (
        "background-color: #1a1d24; padding: 16px; border-radius: 8px; "
        "overflow-x: auto; font-family: monospace; font-size: 14px; "
        "color: #B0B0C0; text-align: left;"
    ),
    "blockquote": (
        "border-left: 4px solid #2DD4BF; margin: 16px 0; padding-left: 16px; "
        "color: #B0B0C0; font-style: italic;"
    ),
    "hr": "border: none; border-top: 1px solid rgba(255, 255, 255, 0.1); margin: 24px 0;",
    "ul": "margin: 16px 0; padding-left: 24px; text-align: left;",
    "ol": "margin: 16px 0; padding-left: 24px; text-align: left;",
    "li": "color: #B0B0C0; margin-bottom: 8px;",
    "img": "max-width: 100%; height: auto; border-radius: 8px;",
}

_STYLED_TAG = re.compile(
    r"<(" + "|".join(_INLINE_STYLES) + r")(?=[\s>/])", re.IGNORECASE
)

# Markdown syntax removed for the plain-text rendering, applied in order
_PLAIN_TEXT_RULES = [
    (re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL), r"\1"),
    (re.compile(r"\*\*\*(.+?)\*\*\*"), r"\1"),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"(?<!\w)\*(?!\s)(.+?)\*"), r"\1"),
    (re.compile(r"___(.+?)___"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"(?<!\w)_(?!\s)(.+?)_(?!\w)"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"!\[([^\]]*)\]\([^)]+\)"), r"[\1]"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"^#+\s+", re.MULTILINE), ""),
    (re.compile(r"^>\s+", re.MULTILINE), ""),
    (re.compile(r"^[*-]\s+", re.MULTILINE), "• "),
    (re.compile(r"^\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"<[^>]+>"), ""),
]

_BLANK_LINES = re.compile(r"\n\s*\n")


## Rendering


def _inline_styles(rendered: str) -> str:
    return _STYLED_TAG.sub(
        lambda m: f'<{m.group(1)} style="{_INLINE_STYLES[m.group(1).lower()]}"',
        rendered,
    )


def markdown_to_html(content: str) -> str:
    """Render Markdown to HTML with inline styles for email clients."""
    rendered = markdown.markdown(content, extensions=["extra", "sane_lists"])
    return _inline_styles(rendered)


def to_plain_text(content: str) -> str:
    """Strip Markdown and HTML from ``content``, keeping the readable text.

    List bullets become ``•``, links keep their label and images their
    alt text in brackets. HTML entities are decoded and runs of blank lines
    collapse to one.
    """
    text = content
    for pattern, replacement in _PLAIN_TEXT_RULES:
        text = pattern.sub(replacement, text)

    text = html.unescape(text)
    return _BLANK_LINES.sub("\n\n", text).strip()


def _button(button_text: Optional[str], button_url: Optional[str]) -> str:
    if not (button_text and button_url):
        return ""

    return f"""
      <table role="presentation" cellpadding="0" cellspacing="0" style="margin: 24px auto;">
        <tr>
          <td>
            <a href="{html.escape(button_url)}" style="display: inline-block; background-color: #2DD4BF; color: #11121E; padding: 14px 32px; border-radius: 12px; font-weight: 500; text-decoration: none; font-size: 16px;">{html.escape(button_text)}</a>
          </td>
        </tr>
      </table>"""


def _preheader(preheader: Optional[str]) -> str:
    if not preheader:
        return ""

    # Padding keeps clients from pulling body text into the inbox preview
    padding = "&zwnj;&nbsp;" * 80
    return f"""
  <div style="display: none; font-size: 1px; line-height: 1px; max-height: 0px; max-width: 0px; opacity: 0; overflow: hidden; mso-hide: all;">
    {html.escape(preheader)}
    {padding}
  </div>"""


def _footer_text(footer_text: Optional[str]) -> str:
    if not footer_text:
        return ""

    return (
        f'<p style="font-size: 12px; color: #666677; margin: 0 0 10px 0; '
        f'font-family: {FONT_STACK};">{html.escape(footer_text)}</p>'
    )


def generate_email_template(
    title: str,
    body: str,
    preheader: Optional[str] = None,
    button_text: Optional[str] = None,
    button_url: Optional[str] = None,
    footer_text: Optional[str] = None,
) -> str:
    """Wrap an HTML body in the branded email layout.

    Args:
        title: Heading and document title, escaped
        body: HTML body, inserted as-is
        preheader: Hidden inbox preview text
        button_text: Call-to-action label, shown only together with ``button_url``
        button_url: Call-to-action link
        footer_text: Extra line above the copyright notice

    Returns:
        Complete HTML document
    """
    year = datetime.now().year
    escaped_title = html.escape(title)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta http-equiv="X-UA-Compatible" content="IE=edge">
  <meta name="x-apple-disable-message-reformatting">
  <meta name="format-detection" content="telephone=no,address=no,email=no,date=no,url=no">
  <title>{escaped_title}</title>
  <link href="https://fonts.googleapis.com/css2?family=Lexend:wght@300;400;500;600&display=swap" rel="stylesheet">
  <style>
    body {{ margin: 0; padding: 0; width: 100% !important; -webkit-text-size-adjust: 100%; -ms-text-size-adjust: 100%; background-color: #10131a; font-family: {FONT_STACK}; color: #F2F2F2; }}
    img {{ border: 0; outline: none; text-decoration: none; -ms-interpolation-mode: bicubic; }}
    a {{ color: #2DD4BF; text-decoration: none; }}
  </style>
</head>
<body style="margin: 0; padding: 0; background-color: #10131a; font-family: {FONT_STACK};">{_preheader(preheader)}
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #10131a;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="480" cellpadding="0" cellspacing="0" style="max-width: 480px; width: 100%;">
          <tr>
            <td align="center" style="padding-bottom: 30px;">
              <img src="{LOGO_URL}" alt="{BRAND_NAME}" width="48" height="48" style="display: block; border-radius: 8px;">
            </td>
          </tr>
          <tr>
            <td style="background-color: #0f1217; border-radius: 12px; padding: 40px; text-align: center; border: 1px solid rgba(255, 255, 255, 0.1); box-shadow: 0 4px 24px rgba(0,0,0,0.2);">
              <h1 style="font-size: 24px; font-weight: 600; margin: 0 0 16px 0; color: #ffffff; font-family: {FONT_STACK};">
                {escaped_title}
              </h1>
              <div style="text-align: center;">
                {body}
              </div>{_button(button_text, button_url)}
            </td>
          </tr>
          <tr>
            <td style="padding-top: 24px; text-align: center;">
              {_footer_text(footer_text)}
              <p style="font-size: 12px; color: #666677; margin: 0; font-family: {FONT_STACK};">
                &copy; {year} <a href="{BRAND_URL}" style="color: #2DD4BF; text-decoration: none;">{BRAND_DOMAIN}</a>
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""


def generate_email_from_markdown(
    title: str,
    content: str,
    preheader: Optional[str] = None,
    button_text: Optional[str] = None,
    button_url: Optional[str] = None,
    footer_text: Optional[str] = None,
) -> Tuple[str, str]:
    """Render Markdown ``content`` into the branded layout.

    Returns:
        Tuple of (html, text), ready for ``EmailMessage.html`` and ``.text``
    """
    html_body = generate_email_template(
        title,
        markdown_to_html(content),
        preheader=preheader,
        button_text=button_text,
        button_url=button_url,
        footer_text=footer_text,
    )

    text_body = "\n".join(
        [
            title,
            "=" * len(title),
            "",
            to_plain_text(content),
            "",
            "---",
            f"© {datetime.now().year} {BRAND_DOMAIN}",
        ]
    )

    return html_body, text_body


## Prebuilt emails


def newsletter(content: str) -> Tuple[str, str]:
    return generate_email_from_markdown(
        f"{BRAND_NAME} Newsletter",
        content,
        footer_text=f"You received this because you subscribed to {BRAND_NAME} updates.",
    )


def announcement(
    title: str,
    content: str,
    button_text: Optional[str] = None,
    button_url: Optional[str] = None,
) -> Tuple[str, str]:
    return generate_email_from_markdown(
        title, content, button_text=button_text, button_url=button_url
    )


def feature_update(feature_name: str, description: str) -> Tuple[str, str]:
    return generate_email_from_markdown(
        f"New Feature: {feature_name}",
        description,
        button_text="Try it now",
        button_url=SCHEDULE_URL,
    )


def maintenance_notice(date: str, duration: str, details: str) -> Tuple[str, str]:
    """Maintenance announcement with the date and duration in bold."""
    content = "\n\n".join(
        [
            f"We will be performing scheduled maintenance on **{date}**.",
            f"**Expected duration:** {duration}",
            details.strip(),
            "We apologize for any inconvenience this may cause.",
        ]
    )

    return generate_email_from_markdown(
        "Scheduled Maintenance",
        content,
        preheader=f"Scheduled maintenance on {date}",
    )
