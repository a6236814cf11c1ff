"""
Rich-text sanitizer for HTML produced by the admin editor.

Keeps the editor's toolbar vocabulary (headings, emphasis, lists, links,
blockquotes) and drops everything else.  Text content of dropped tags is
kept, except inside ``script``/``style`` which is discarded entirely.
"""

from html import escape
from html.parser import HTMLParser
from urllib.parse import urlparse

ALLOWED_TAGS = {
    'p', 'br', 'h1', 'h2', 'h3', 'strong', 'b', 'em', 'i', 'u', 's',
    'strike', 'ol', 'ul', 'li', 'a', 'blockquote',
}
VOID_TAGS = {'br'}
DROP_CONTENT_TAGS = {'script', 'style'}
ALLOWED_URL_SCHEMES = {'', 'http', 'https', 'mailto'}


def is_safe_url(url: str) -> bool:
    try:
        scheme = urlparse(url.strip()).scheme.lower()
    except ValueError:
        return False
    return scheme in ALLOWED_URL_SCHEMES


class _Sanitizer(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.out = []
        self.open_tags = []
        self.skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth += 1
            return
        if self.skip_depth or tag not in ALLOWED_TAGS:
            return
        attr_text = ''
        if tag == 'a':
            href = dict(attrs).get('href')
            if href and is_safe_url(href):
                attr_text = f' href="{escape(href, quote=True)}"'
        self.out.append(f'<{tag}{attr_text}>')
        if tag not in VOID_TAGS:
            self.open_tags.append(tag)

    def handle_startendtag(self, tag, attrs):
        self.handle_starttag(tag, attrs)
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth -= 1

    def handle_endtag(self, tag):
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth = max(0, self.skip_depth - 1)
            return
        if self.skip_depth or tag not in self.open_tags:
            return
        # Close anything left open inside this element first
        while self.open_tags:
            open_tag = self.open_tags.pop()
            self.out.append(f'</{open_tag}>')
            if open_tag == tag:
                break

    def handle_data(self, data):
        if not self.skip_depth:
            self.out.append(escape(data, quote=False))

    def result(self) -> str:
        while self.open_tags:
            self.out.append(f'</{self.open_tags.pop()}>')
        return ''.join(self.out)


def sanitize_html(html: str | None) -> str:
    """Return ``html`` reduced to the allowed tags and attributes."""
    if not html:
        return ''
    parser = _Sanitizer()
    parser.feed(html)
    parser.close()
    return parser.result()
