"""CSV rendering of exported table rows."""

import csv
import io
import re

_TAG_RE = re.compile(r'<[^>]*>')


def strip_tags(value: str) -> str:
    return _TAG_RE.sub('', value)


def csv_value(value) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        if '<' in value:
            return strip_tags(value)
        return value
    return str(value)


def iter_csv(rows: list[dict]):
    """Yield CSV lines: a header from the first row's columns, then one line per row.

    Values containing a comma, quote or newline are quoted with internal
    quotes doubled.
    """
    if not rows:
        return
    header = list(rows[0])
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')

    writer.writerow(header)
    yield buf.getvalue()
    for row in rows:
        buf.seek(0)
        buf.truncate()
        writer.writerow([csv_value(row.get(col)) for col in header])
        yield buf.getvalue()


def to_csv(rows: list[dict]) -> str:
    return ''.join(iter_csv(rows))
