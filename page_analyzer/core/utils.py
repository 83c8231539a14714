# utils.py (shared helpers)
import re
from typing import Optional
from urllib.parse import urlsplit

import chardet
from w3lib.url import safe_url_string

USER_AGENT = "PageAnalyzer/1.0 (+https://github.com/page-analyzer)"

# XML declarations break lxml when the document is handed over as str
XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>", flags=re.IGNORECASE)


def detect_encoding(binary: bytes, default: str = "utf-8") -> str:
    guess = chardet.detect(binary)
    return guess.get("encoding") or default


def to_unicode(b: bytes, declared: Optional[str] = None) -> str:
    """Decode with the declared charset, falling back to a chardet guess."""
    if declared:
        try:
            return b.decode(declared, errors="replace")
        except LookupError:
            pass
    try:
        return b.decode(detect_encoding(b), errors="replace")
    except LookupError:
        return b.decode("utf-8", errors="replace")


def strip_xml_declaration(text: str) -> str:
    return XML_DECL_RE.sub("", text, count=1)


def clean_space(s: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (s or "").strip())


def norm_url(u: str) -> str:
    """Percent-encode unsafe characters and IDNA-encode the host."""
    return safe_url_string(u)


def host_of(u: str) -> str:
    """Lowercased hostname (no port, no brackets); '' when absent."""
    try:
        return (urlsplit(u).hostname or "").lower()
    except ValueError:
        return ""


def same_host(a: str, b: str) -> bool:
    return a.lower() == b.lower()
