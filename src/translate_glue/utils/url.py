from __future__ import annotations

from urllib.parse import urlparse


def remote_media_host(value: str) -> str | None:
    """Return the host of ``value`` if it is an http(s) URL, else ``None``."""
    candidate = value.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None

    parsed = urlparse(candidate)
    if not parsed.scheme and "/" in candidate and "." in candidate.split("/", 1)[0]:
        parsed = urlparse(f"https://{candidate}")
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        return None

    netloc = parsed.netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc
