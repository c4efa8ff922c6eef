# Overview: QR payload normalization; pure text functions used at every scan/lookup boundary.

"""
QR Identifier Normalizer

WHY: Handheld scanners and phone cameras often emit more than the code
itself. Some cylinder labels print a QC stamp in front of the serial, so a
scan arrives as "Q.C PASSED   05285AWI1ES04". Every lookup, issuance and
manual entry path runs the raw text through normalize_qr_code() so the same
physical cylinder always resolves to the same identifier.

RULES:
- Never raise for any input; "is this usable" is decided by the caller.
- The rightmost token that carries an ASCII letter or digit wins.
- Edge punctuation is noise ("ABC-123:" -> "ABC-123"); inner punctuation is kept.
- Full identifiers carry exactly one "LPG-" prefix, uppercase.
"""

from __future__ import annotations

import re


IDENTIFIER_PREFIX = "LPG-"

_ALNUM_RE = re.compile(r"[A-Za-z0-9]")
_EDGE_NOISE_RE = re.compile(r"^[^A-Za-z0-9]+|[^A-Za-z0-9]+$")


def has_alphanumeric_characters(value: str | None) -> bool:
    """True when value contains at least one ASCII letter or digit."""
    return bool(value) and _ALNUM_RE.search(value) is not None


def extract_last_significant_token(raw: str | None) -> str:
    """
    Extract the last whitespace-delimited token that carries alphanumerics.

    Examples:
        "Q.C PASSED   05285AWI1ES04" -> "05285AWI1ES04"
        "CODE: ABC-123:"             -> "ABC-123"
        "***"                        -> "***"  (no alphanumerics: last token as-is)
        "   "                        -> "   "  (blank input is returned unchanged)
    """
    if raw is None:
        return ""

    parts = raw.split()
    if not parts:
        return raw

    for part in reversed(parts):
        if not has_alphanumeric_characters(part):
            continue
        cleaned = _EDGE_NOISE_RE.sub("", part)
        # The token has an alphanumeric, so trimming cannot empty it; keep
        # the untrimmed token as the fallback all the same.
        return cleaned or part

    return parts[-1]


def normalize_qr_code(raw: str | None) -> str:
    """Stable entry point for scan handlers, manual entry and lookups."""
    return extract_last_significant_token(raw)


def _strip_prefix(value: str) -> str | None:
    if value.startswith(IDENTIFIER_PREFIX):
        return value[len(IDENTIFIER_PREFIX):]
    return None


def derive_full_identifier(raw_or_normalized: str | None) -> str:
    """
    Build the canonical "LPG-<CODE>" identifier for a scan or typed code.

    Idempotent: derive_full_identifier(derive_full_identifier(x)) equals
    derive_full_identifier(x) for every x.

    A single-token value that already starts with the prefix is taken as an
    identifier; its body is normalized on its own so that the prefix's dash
    is never mistaken for edge noise ("LPG--" keeps an empty-looking body
    instead of collapsing to "LPG").

    Case folding happens before tokenizing, so a character whose uppercase
    form is ASCII cannot turn a noise token into a significant one.
    """
    text = (raw_or_normalized or "").upper().strip()

    body = _strip_prefix(text) if len(text.split()) == 1 else None
    if body is not None:
        body = normalize_qr_code(body)
    else:
        body = normalize_qr_code(text).strip()
        unprefixed = _strip_prefix(body)
        if unprefixed is not None:
            body = normalize_qr_code(unprefixed)

    return IDENTIFIER_PREFIX + body


def split_identifier(identifier: str) -> str:
    """QR code fragment of a canonical identifier (identifier minus prefix)."""
    return derive_full_identifier(identifier)[len(IDENTIFIER_PREFIX):]
