"""
Identity Normalizer Service

Canonicalizes raw identity strings (QR payloads, JSON badges, labelled text,
national-id shapes) into a comparable identity value.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

import structlog

logger = structlog.get_logger(__name__)


# Candidate JSON field names, tried in order
JSON_IDENTITY_FIELDS = [
    'cedula', 'cédula', 'documento', 'id', 'identificacion',
    'identificación', 'numero', 'número', 'dni', 'doc',
    'num_doc', 'no_doc', 'nro_doc', 'num', 'no', 'nro'
]

JSON_VALUE_SHAPE = re.compile(r'^[\w\-]{3,20}$', re.ASCII)
IDENTITY_SHAPE = re.compile(r'^[A-Za-z0-9\-]{3,20}$')
DIGIT_RUN = re.compile(r'\d{5,15}', re.ASCII)
PREFERRED_DIGIT_RUN = re.compile(r'^\d{8,12}$', re.ASCII)
NON_KEY_CHARS = re.compile(r'[^\w\-]', re.ASCII)
WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class ExtractionPattern:
    """One step of the extraction cascade."""

    name: str
    pattern: Pattern
    group: int = 1

    def extract(self, text: str) -> Optional[str]:
        match = self.pattern.search(text)
        if not match:
            return None
        return match.group(self.group)


_I = re.IGNORECASE | re.ASCII

EXTRACTION_PATTERNS: List[ExtractionPattern] = [
    # QR payloads printed as "Texto - <id>"
    ExtractionPattern("qr_text", re.compile(r'Texto\s*-\s*([\w\-]+)', _I)),
    # Labelled formats
    ExtractionPattern("cedula_label", re.compile(r'\b[Cc][EeÉé][Dd][Uu][Ll][Aa][:=\s-]*([A-Z0-9\-]{3,20})', re.IGNORECASE)),
    ExtractionPattern("id_label", re.compile(r'\bID[:=\s-]*([A-Z0-9\-]{3,20})', _I)),
    ExtractionPattern("dni_label", re.compile(r'\bDNI[:=\s-]*([A-Z0-9\-]{3,20})', _I)),
    ExtractionPattern("doc_label", re.compile(r'\bDOC(UMENTO)?[:=\s-]*([A-Z0-9\-]{3,20})', _I), group=2),
    # Country specific shapes
    ExtractionPattern("ve_ec_prefix", re.compile(r'\b[VE]-([0-9\-]{6,15})\b', _I)),
    ExtractionPattern("hyphenated_national_id", re.compile(r'\b([0-9]{1,2}-[0-9]{3,4}-[0-9]{3,6})\b', re.ASCII)),
    ExtractionPattern("prefixed_hyphenated_id", re.compile(r'\b([A-Z]?\d+-\d+-\d+)\b', re.ASCII)),
    ExtractionPattern("alphanumeric_prefix", re.compile(r'\b([A-Z]{1,3}[0-9]{6,12})\b', _I)),
    # Long bare numbers
    ExtractionPattern("long_digit_run", re.compile(r'\b([0-9]{7,15})\b', re.ASCII)),
    # Anything that still looks like an id
    ExtractionPattern("generic_token", re.compile(r'\b([A-Z0-9\-]{5,20})\b', _I)),
]


def _from_json(text: str) -> Optional[str]:
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None

    for field in JSON_IDENTITY_FIELDS:
        value = data.get(field)
        if not value:
            continue
        candidate = str(value).strip()
        if JSON_VALUE_SHAPE.match(candidate):
            return candidate
    return None


def _from_patterns(text: str) -> Optional[str]:
    for step in EXTRACTION_PATTERNS:
        captured = step.extract(text)
        if not captured:
            continue
        candidate = WHITESPACE.sub('', captured)
        if IDENTITY_SHAPE.match(candidate):
            return candidate
    return None


def _from_digit_runs(text: str) -> Optional[str]:
    runs = DIGIT_RUN.findall(text)
    if not runs:
        return None
    for run in runs:
        if PREFERRED_DIGIT_RUN.match(run):
            return run
    return runs[0]


def _normalize_once(text: str) -> str:
    """Single pass of the cascade over already-trimmed text."""
    found = _from_json(text)
    if found:
        return found

    found = _from_patterns(text)
    if found:
        return found

    compact = WHITESPACE.sub('', text)
    if IDENTITY_SHAPE.match(compact):
        return compact

    found = _from_digit_runs(text)
    if found:
        return found

    return compact or text


def normalize(raw) -> str:
    """
    Canonicalize a raw identity string.

    Total: never raises, returns the trimmed input on internal failure.
    Idempotent: the cascade is applied until its output no longer changes.
    Every pass returns a substring or the whitespace-stripped text, so the
    value can only shrink and the loop terminates.
    """
    if raw is None:
        return ''
    try:
        text = str(raw).strip()
    except Exception:
        return ''
    if not text:
        return ''

    try:
        current = text
        for _ in range(len(text) + 1):
            following = _normalize_once(current)
            if following == current:
                return current
            current = following
        return current
    except Exception as e:
        logger.warning("Identity normalization failed", raw=text, error=str(e))
        return text


def identity_key(raw) -> str:
    """Matching key: normalized identity restricted to [\\w-] characters."""
    return NON_KEY_CHARS.sub('', normalize(raw))


def match_key(raw) -> str:
    """
    Grouping key used by the ledger scans.

    Falls back to the trimmed text when the identity key is empty, so that two
    unrelated strings made only of punctuation never collapse into one person.
    """
    text = str(raw if raw is not None else '').strip()
    return identity_key(text) or text


def identities_match(raw_a, raw_b) -> bool:
    """Two identities match when their trimmed text or their keys are equal."""
    a = str(raw_a or '').strip()
    b = str(raw_b or '').strip()
    if not a or not b:
        return False
    return a == b or match_key(a) == match_key(b)


class IdentityNormalizerService:
    """Thin service wrapper so callers can inject a normalizer."""

    def normalize(self, raw) -> str:
        return normalize(raw)

    def key(self, raw) -> str:
        return match_key(raw)

    def matches(self, raw_a, raw_b) -> bool:
        return identities_match(raw_a, raw_b)
