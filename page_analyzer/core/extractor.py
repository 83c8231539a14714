# extractor.py - turn fetched HTML into a ParsedPage
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from lxml import etree
from lxml import html as LH

from .errors import ParseError
from .models import HEADING_LEVELS, ParsedPage, empty_headings
from .utils import clean_space, strip_xml_declaration, to_unicode

log = logging.getLogger(__name__)

# Substrings hinting at credential fields
LOGIN_HINTS = (
    "login", "signin", "sign-in",
    "username", "user", "email", "e-mail",
    "pwd", "password", "passcode",
)
LOGIN_HINT_ATTRS = ("name", "id", "autocomplete", "placeholder")
LOGIN_CTA_PHRASES = ("log in", "signin", "sign in", "account")

# A doctype only counts before the first element; comments may precede it
DOCTYPE_RE = re.compile(r"^\ufeff?\s*(?:<!--.*?-->\s*)*<!doctype(?P<body>[^>]*)>", re.I | re.S)
DOCTYPE_ID_RE = re.compile(
    r"""(?P<kw>public|system)\s*(?:"(?P<a>[^"]*)"|'(?P<b>[^']*)')"""
    r"""(?:\s*(?:"(?P<c>[^"]*)"|'(?P<d>[^']*)'))?""",
    re.I,
)


# -----------------------------------------------------------
# Doctype
# -----------------------------------------------------------

def _refine(public_id: str, family: str) -> str:
    for variant in ("strict", "transitional", "frameset"):
        if variant in public_id:
            return f"{family} {variant.capitalize()}"
    return family


def doctype_label(name: Optional[str], public_id: Optional[str], system_id: Optional[str]) -> str:
    """Map the parts of a doctype declaration onto a human readable label."""
    name = (name or "").strip().lower()
    if name != "html":
        return name.upper() if name else "unknown"

    public_id = (public_id or "").strip().lower()
    system_id = (system_id or "").strip().lower()

    if not public_id and not system_id:
        return "HTML5"
    if system_id == "about:legacy-compat" and not public_id:
        return "HTML5 (legacy-compat)"
    if "xhtml 1.1" in public_id:
        return "XHTML 1.1"
    if "xhtml 1.0" in public_id:
        return _refine(public_id, "XHTML 1.0")
    if "html 4.01" in public_id:
        return _refine(public_id, "HTML 4.01")
    if "html 4.0" in public_id:
        return "HTML 4.0"
    if "html 3.2" in public_id:
        return "HTML 3.2"
    if "html 2.0" in public_id:
        return "HTML 2.0"
    return "HTML (doctype with identifiers)"


def _first(*groups: Optional[str]) -> str:
    return next((g for g in groups if g is not None), "")


def read_doctype(text: str) -> Optional[Tuple[str, str, str]]:
    """
    Return (name, public_id, system_id) of the leading doctype, or None.

    Read from the source text: lxml's docinfo reports the root element's
    name rather than the declared one.
    """
    m = DOCTYPE_RE.match(text)
    if not m:
        return None
    parts = m.group("body").split(None, 1)
    name = parts[0] if parts else ""
    rest = parts[1] if len(parts) > 1 else ""

    public_id = system_id = ""
    ids = DOCTYPE_ID_RE.search(rest)
    if ids:
        first = _first(ids.group("a"), ids.group("b"))
        if ids.group("kw").lower() == "public":
            public_id = first
            system_id = _first(ids.group("c"), ids.group("d"))
        else:
            system_id = first
    return name, public_id, system_id


def detect_doctype(text: str) -> str:
    found = read_doctype(text)
    if found is None:
        return "unknown"
    return doctype_label(*found)


# -----------------------------------------------------------
# Title / headings / links
# -----------------------------------------------------------

def extract_title(doc: LH.HtmlElement) -> str:
    tnode = doc.find(".//title")
    if tnode is None:
        return ""
    return tnode.text_content().strip()


def count_headings(doc: LH.HtmlElement) -> Dict[str, int]:
    out = empty_headings()
    for tag in HEADING_LEVELS:
        out[tag] = len(doc.xpath(f"//{tag}"))
    return out


def make_abs(base_url: str, raw: Optional[str]) -> Optional[str]:
    """Resolve `raw` against `base_url`; None unless scheme and host survive."""
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        absu = urljoin(base_url, raw)
        parts = urlsplit(absu)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return absu


def extract_links(doc: LH.HtmlElement, base_url: str) -> List[str]:
    out: List[str] = []
    for a in doc.xpath("//a[@href]"):
        absu = make_abs(base_url, a.get("href"))
        if absu:
            out.append(absu)
    return out


# -----------------------------------------------------------
# Login detection
# -----------------------------------------------------------

def _has_hint(value: Optional[str]) -> bool:
    v = (value or "").lower()
    return any(h in v for h in LOGIN_HINTS)


def _input_type(inp: LH.HtmlElement) -> str:
    return (inp.get("type") or "").strip().lower()


def has_login_form(doc: LH.HtmlElement) -> bool:
    for form in doc.iter("form"):
        inputs = list(form.iter("input"))

        if any(_input_type(inp) == "password" for inp in inputs):
            return True

        auth_field = any(
            _has_hint(inp.get(attr))
            for inp in inputs
            for attr in LOGIN_HINT_ATTRS
        )
        if not auth_field:
            continue

        if any(True for _ in form.iter("button")):
            return True
        if any(_input_type(inp) in ("submit", "button") for inp in inputs):
            return True
    return False


def has_auth_cta(doc: LH.HtmlElement) -> bool:
    for node in doc.iter("button", "a"):
        text = clean_space(node.text_content()).lower()
        if any(p in text for p in LOGIN_CTA_PHRASES):
            return True
    return False


# -----------------------------------------------------------
# Main function
# -----------------------------------------------------------

def decode_document(html_bytes: bytes, encoding: Optional[str] = None) -> str:
    return strip_xml_declaration(to_unicode(html_bytes, encoding))


def parse_document(text: str) -> Optional[LH.HtmlElement]:
    """Build the lxml tree; None when there is no element content."""
    if not text.strip():
        return None
    parser = LH.HTMLParser(default_doctype=False)
    try:
        return LH.document_fromstring(text, parser=parser)
    except etree.ParserError as e:
        # nothing but a doctype or comments
        if "empty" in str(e).lower():
            return None
        raise ParseError(f"failed to parse HTML: {e}") from e
    except (etree.XMLSyntaxError, ValueError) as e:
        raise ParseError(f"failed to parse HTML: {e}") from e


def inspect_page(html_bytes: bytes, base_url: str, encoding: Optional[str] = None) -> ParsedPage:
    text = decode_document(html_bytes, encoding)
    html_version = detect_doctype(text)

    doc = parse_document(text)
    if doc is None:
        log.debug("[extract] empty document base_url=%s doctype=%s", base_url, html_version)
        return ParsedPage(html_version=html_version)

    page = ParsedPage(
        html_version=html_version,
        title=extract_title(doc),
        headings=count_headings(doc),
        links=extract_links(doc, base_url),
        login_form_present=has_login_form(doc) or has_auth_cta(doc),
    )

    log.debug(
        "[extract] parsed base_url=%s title=%r links=%d login_form_present=%s",
        base_url, page.title, len(page.links), page.login_form_present,
    )
    return page
