"""Single-page structure analyzer: fetch a URL, inspect its HTML, probe its links."""

__version__ = "1.0.0"
