"""Turn pasted map links, embed snippets and free text into a lookup key.

Nothing here touches the network. When no identifier can be read straight
out of the input, the cleaned text is handed on to the place resolver.
"""

import logging
import re
from typing import Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from reviews_worker.models import NormalizedInput

logger = logging.getLogger(__name__)

URL_REGEX = re.compile(r"^https?://\S+$", re.IGNORECASE)
PLACE_ID_QUERY_REGEX = re.compile(r"[?&]q=place_id:([A-Za-z0-9_-]+)")
PLACE_ID_PARAM_REGEX = re.compile(r"[?&]place_id=([A-Za-z0-9_-]+)")
CID_PARAM_REGEX = re.compile(r"[?&]cid=([0-9]+)")
SIXTEEN_S_REGEX = re.compile(r"!16s([^!&]+)")
IDENTIFIER_REGEX = re.compile(r"^(?:place_id:[A-Za-z0-9_/-]+|cid:[0-9]+)$")


def extract_iframe_src(text: str) -> Optional[str]:
    """Return the ``src`` of the first iframe in an HTML fragment, if any."""
    if "<iframe" not in text.lower():
        return None
    iframe = BeautifulSoup(text, "html.parser").find("iframe")
    if iframe is None:
        return None
    src = iframe.get("src")
    if isinstance(src, str) and src.strip():
        return src.strip()
    return None


def is_url(text: str) -> bool:
    return bool(URL_REGEX.match(text))


def _decode_g_path(value: str) -> Optional[str]:
    # embed links escape the path twice (%252F), plain links once
    decoded = value
    for _ in range(3):
        if decoded.startswith("/g/"):
            return decoded[1:]
        unquoted = unquote(decoded)
        if unquoted == decoded:
            break
        decoded = unquoted
    return decoded[1:] if decoded.startswith("/g/") else None


def extract_identifier_from_url(url: str) -> Optional[str]:
    """Read a place id or cid directly out of a Google Maps style URL."""
    decoded = unquote(url)

    for pattern in (PLACE_ID_QUERY_REGEX, PLACE_ID_PARAM_REGEX):
        match = pattern.search(decoded)
        if match:
            return f"place_id:{match.group(1)}"

    match = CID_PARAM_REGEX.search(decoded)
    if match:
        return f"cid:{match.group(1)}"

    # !16s segments can still be escaped after one round of decoding, so look at the raw URL too
    for source in (url, decoded):
        match = SIXTEEN_S_REGEX.search(source)
        if match:
            g_path = _decode_g_path(match.group(1))
            if g_path:
                return f"place_id:{g_path}"
    return None


def normalize(raw_input: str) -> NormalizedInput:
    working = (raw_input or "").strip()
    src = extract_iframe_src(working)
    if src:
        logger.debug("Using iframe src as input")
        working = src

    if IDENTIFIER_REGEX.match(working):
        return NormalizedInput(cleaned_text=working, candidate_identifier=working)

    # unquote() and the patterns never raise, so a malformed URL just yields no candidate
    candidate = extract_identifier_from_url(working) if is_url(working) else None
    if candidate:
        logger.info("Extracted identifier %s directly from input", candidate)
    return NormalizedInput(cleaned_text=working, candidate_identifier=candidate)
