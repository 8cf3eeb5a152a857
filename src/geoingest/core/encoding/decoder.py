"""
Text decoding for uploads of unknown character encoding.

Survey exports arrive as UTF-8, Windows-1252 or Latin-1 without any
declaration. ``decode_text`` tries a list of candidate encodings, scores each
result and keeps the first plausible one. It never raises: when every
candidate fails, a static Windows-1252 table recovers the bytes.
"""

import codecs
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import chardet

logger = logging.getLogger(__name__)

REPLACEMENT_CHAR = "\ufffd"
BYTE_ORDER_MARK = "\ufeff"

# Acceptance thresholds for a decoded candidate
MAX_REPLACEMENT_RATIO = 0.01
MAX_QUESTION_MARK_RATIO = 0.10

# Minimum chardet confidence for a guess to replace the static table
MIN_DETECTION_CONFIDENCE = 0.75

# Windows-1252 assignments for 0x80-0x9F. Slots left undefined by the code
# page (0x81, 0x8D, 0x8F, 0x90, 0x9D) map to the same code point, like Latin-1.
_WINDOWS_1252_HIGH_CONTROLS = {
    0x80: "€",  # EURO SIGN
    0x81: "\u0081",
    0x82: "‚",  # SINGLE LOW-9 QUOTATION MARK
    0x83: "ƒ",  # LATIN SMALL LETTER F WITH HOOK
    0x84: "„",  # DOUBLE LOW-9 QUOTATION MARK
    0x85: "…",  # HORIZONTAL ELLIPSIS
    0x86: "†",  # DAGGER
    0x87: "‡",  # DOUBLE DAGGER
    0x88: "ˆ",  # MODIFIER LETTER CIRCUMFLEX ACCENT
    0x89: "‰",  # PER MILLE SIGN
    0x8A: "Š",  # LATIN CAPITAL LETTER S WITH CARON
    0x8B: "‹",  # SINGLE LEFT-POINTING ANGLE QUOTATION MARK
    0x8C: "Œ",  # LATIN CAPITAL LIGATURE OE
    0x8D: "\u008d",
    0x8E: "Ž",  # LATIN CAPITAL LETTER Z WITH CARON
    0x8F: "\u008f",
    0x90: "\u0090",
    0x91: "‘",  # LEFT SINGLE QUOTATION MARK
    0x92: "’",  # RIGHT SINGLE QUOTATION MARK
    0x93: "“",  # LEFT DOUBLE QUOTATION MARK
    0x94: "”",  # RIGHT DOUBLE QUOTATION MARK
    0x95: "•",  # BULLET
    0x96: "–",  # EN DASH
    0x97: "—",  # EM DASH
    0x98: "˜",  # SMALL TILDE
    0x99: "™",  # TRADE MARK SIGN
    0x9A: "š",  # LATIN SMALL LETTER S WITH CARON
    0x9B: "›",  # SINGLE RIGHT-POINTING ANGLE QUOTATION MARK
    0x9C: "œ",  # LATIN SMALL LIGATURE OE
    0x9D: "\u009d",
    0x9E: "ž",  # LATIN SMALL LETTER Z WITH CARON
    0x9F: "Ÿ",  # LATIN CAPITAL LETTER Y WITH DIAERESIS
}

WINDOWS_1252_TABLE: tuple = tuple(
    _WINDOWS_1252_HIGH_CONTROLS.get(byte, chr(byte)) for byte in range(256)
)

# A UTF-8 lead byte followed by a continuation byte, as read by a
# single-byte code page ("Ã©" for "é", "â€™" for "’").
_UTF8_LEAD_CHARS = "".join(chr(byte) for byte in range(0xC2, 0xF5))
_UTF8_CONTINUATION_CHARS = "".join(
    sorted({WINDOWS_1252_TABLE[byte] for byte in range(0x80, 0xC0)} | {chr(byte) for byte in range(0x80, 0xC0)})
)
_MOJIBAKE_PAIR = re.compile(f"[{re.escape(_UTF8_LEAD_CHARS)}][{re.escape(_UTF8_CONTINUATION_CHARS)}]")

# Code page names and numbers found in shapefile .cpg files
_CODEPAGE_ALIASES = {
    "utf8": "utf-8",
    "utf-8": "utf-8",
    "65001": "utf-8",
    "1252": "windows-1252",
    "ansi1252": "windows-1252",
    "cp1252": "windows-1252",
    "windows1252": "windows-1252",
    "windows-1252": "windows-1252",
    "88591": "iso-8859-1",
    "iso88591": "iso-8859-1",
    "iso-8859-1": "iso-8859-1",
    "latin1": "iso-8859-1",
    "latin-1": "iso-8859-1",
    "885915": "iso-8859-15",
    "iso885915": "iso-8859-15",
    "iso-8859-15": "iso-8859-15",
    "1256": "windows-1256",
    "ansi1256": "windows-1256",
    "windows-1256": "windows-1256",
    "88596": "iso-8859-6",
    "iso88596": "iso-8859-6",
}


@dataclass(frozen=True)
class DecodedText:
    """
    Result of decoding raw bytes.

    Attributes:
        text: Decoded text, without a leading byte-order mark
        encoding: Name of the encoding that produced the text
        used_fallback: True when no candidate met the quality thresholds
    """

    text: str
    encoding: str
    used_fallback: bool = False


@dataclass(frozen=True)
class CandidateScore:
    """Quality measures of one decoding attempt."""

    encoding: str
    text: str
    replacement_ratio: float
    question_ratio: float
    has_expected_characters: bool
    mojibake: bool = False

    @property
    def acceptable(self) -> bool:
        return (
            self.replacement_ratio < MAX_REPLACEMENT_RATIO
            and self.question_ratio < MAX_QUESTION_MARK_RATIO
        )

    @property
    def rank(self) -> tuple:
        """Sort key among acceptable candidates; lower is better."""
        return (self.mojibake, self.replacement_ratio, not self.has_expected_characters)


def has_expected_characters(text: str) -> bool:
    """
    Check for accented Latin or Arabic letters.

    Args:
        text: Decoded text

    Returns:
        True if the text holds a Latin-1 Supplement / Latin Extended-A
        letter or a character of the Arabic block
    """
    for char in text:
        code = ord(char)
        if 0x00C0 <= code <= 0x017F and code not in (0x00D7, 0x00F7):
            return True
        if 0x0600 <= code <= 0x06FF:
            return True
    return False


def looks_like_mojibake(text: str) -> bool:
    """
    Check whether text looks like UTF-8 read with a single-byte code page.

    Every multi-byte UTF-8 character read that way leaves one lead and
    continuation pair among two to four non-ASCII characters.

    Args:
        text: Decoded text

    Returns:
        True when such pairs account for most of the non-ASCII characters
    """
    pairs = len(_MOJIBAKE_PAIR.findall(text))
    if not pairs:
        return False
    non_ascii = sum(1 for char in text if ord(char) > 0x7F)
    return pairs * 3 >= non_ascii


def score_candidate(encoding: str, text: str) -> CandidateScore:
    """
    Score one decoded candidate.

    Args:
        encoding: Encoding used
        text: Text produced with ``errors="replace"``

    Returns:
        CandidateScore with the replacement, question-mark and
        expected-character measures
    """
    length = len(text) or 1
    return CandidateScore(
        encoding=encoding,
        text=text,
        replacement_ratio=text.count(REPLACEMENT_CHAR) / length,
        question_ratio=text.count("?") / length,
        has_expected_characters=has_expected_characters(text),
        mojibake=looks_like_mojibake(text),
    )


def strip_bom(text: str) -> str:
    """Remove a leading byte-order mark."""
    if text.startswith(BYTE_ORDER_MARK):
        return text[1:]
    return text


def decode_windows_1252_manual(raw: bytes) -> str:
    """
    Decode bytes with the static Windows-1252 table.

    Every byte maps to exactly one character, so this cannot fail.

    Args:
        raw: Raw bytes

    Returns:
        Decoded text
    """
    return "".join(WINDOWS_1252_TABLE[byte] for byte in raw)


def _is_canonical_unicode(encoding: str) -> bool:
    try:
        return codecs.lookup(encoding).name == "utf-8"
    except LookupError:
        return False


def detect_with_chardet(raw: bytes) -> Optional[DecodedText]:
    """
    Decode bytes with the encoding chardet guesses for them.

    Args:
        raw: Raw bytes

    Returns:
        DecodedText, or None when the guess is missing, below
        MIN_DETECTION_CONFIDENCE or does not decode the bytes cleanly
    """
    result = chardet.detect(raw)
    encoding = result.get("encoding")
    confidence = result.get("confidence") or 0.0
    logger.info(f"Chardet detected encoding: {encoding} with confidence {confidence:.2f}")
    if not encoding or confidence < MIN_DETECTION_CONFIDENCE:
        return None

    try:
        text = raw.decode(encoding)
    except (LookupError, UnicodeDecodeError):
        logger.warning(f"Chardet proposed {encoding} but it does not decode the input")
        return None
    return DecodedText(text=strip_bom(text), encoding=encoding.lower())


def decode_text(raw: bytes, candidates: Optional[Sequence[str]] = None) -> DecodedText:
    """
    Recover text from bytes of unknown encoding.

    Candidates are tried in order. Strictly valid UTF-8 is accepted at once.
    Otherwise, among the candidates under both thresholds, one that does
    not look like misread UTF-8 wins, then the fewest replacement markers,
    then accented Latin or Arabic letters, then candidate order. When no
    candidate qualifies, a confident chardet guess is used, then the
    Windows-1252 table, then UTF-8 with replacement characters.

    Args:
        raw: Raw bytes
        candidates: Encodings to try; defaults to ``settings.candidate_encodings``

    Returns:
        DecodedText (never raises)
    """
    if candidates is None:
        from geoingest.core.config import settings

        candidates = settings.candidate_encodings

    if not raw:
        return DecodedText(text="", encoding=candidates[0] if candidates else "utf-8")

    acceptable: List[CandidateScore] = []
    for encoding in candidates:
        if _is_canonical_unicode(encoding):
            try:
                text = raw.decode("utf-8")
                return DecodedText(text=strip_bom(text), encoding=encoding)
            except UnicodeDecodeError:
                pass

        try:
            text = raw.decode(encoding, errors="replace")
        except LookupError:
            logger.warning(f"Skipping unknown candidate encoding: {encoding}")
            continue

        score = score_candidate(encoding, strip_bom(text))
        logger.debug(
            f"Candidate {encoding}: replacement={score.replacement_ratio:.3f}, "
            f"question={score.question_ratio:.3f}, "
            f"expected_chars={score.has_expected_characters}, mojibake={score.mojibake}"
        )
        if score.acceptable:
            acceptable.append(score)

    if acceptable:
        best = min(acceptable, key=lambda score: score.rank)
        return DecodedText(text=best.text, encoding=best.encoding)

    detected = detect_with_chardet(raw)
    if detected is not None:
        return detected

    logger.warning("No candidate encoding met the quality thresholds, using Windows-1252 table")
    text = strip_bom(decode_windows_1252_manual(raw))
    if text:
        return DecodedText(text=text, encoding="windows-1252", used_fallback=True)

    return DecodedText(
        text=strip_bom(raw.decode("utf-8", errors="replace")),
        encoding="utf-8",
        used_fallback=True,
    )


def encoding_for_codepage(cpg_text: Optional[str]) -> str:
    """
    Map the content of a shapefile ``.cpg`` file to a codec name.

    Args:
        cpg_text: Content of the .cpg file (e.g. "UTF-8", "1252", "ANSI 1252")

    Returns:
        Python codec name; "utf-8" when unrecognized or missing
    """
    if not cpg_text:
        return "utf-8"

    value = cpg_text.strip().lower()
    compact = value.replace(" ", "").replace("_", "")
    for key in (value, compact, compact.replace("-", "")):
        if key in _CODEPAGE_ALIASES:
            return _CODEPAGE_ALIASES[key]

    digits = "".join(ch for ch in compact if ch.isdigit())
    if digits and compact.replace(digits, "") in ("", "ansi", "cp", "windows", "windows-"):
        try:
            return codecs.lookup(f"cp{digits}").name
        except LookupError:
            pass

    try:
        return codecs.lookup(value).name
    except LookupError:
        logger.warning(f"Unrecognized code page {cpg_text!r}, defaulting to UTF-8")
        return "utf-8"


def recover_text(value: str, encoding: str) -> str:
    """
    Re-decode a string that was read byte-for-byte as Latin-1.

    Attribute tables are read with Latin-1 so that every byte survives as
    one character. This turns those characters back into bytes and decodes
    them with the encoding resolved for the table.

    Args:
        value: String whose code points are the original bytes
        encoding: Encoding resolved for the attribute table

    Returns:
        Unicode text; ``value`` unchanged when it is not byte-shaped
    """
    try:
        raw = value.encode("latin-1")
    except UnicodeEncodeError:
        # Already holds characters outside one byte: real Unicode text.
        return value

    name = codecs.lookup(encoding).name if _known(encoding) else "utf-8"
    if name in ("latin-1", "iso8859-1"):
        return value
    if name == "cp1252":
        return decode_windows_1252_manual(raw)
    return raw.decode(name, errors="replace")


def _known(encoding: str) -> bool:
    try:
        codecs.lookup(encoding)
        return True
    except LookupError:
        return False


def detect_bytes_encoding(samples: Iterable[bytes], candidates: Optional[Sequence[str]] = None) -> str:
    """
    Pick one encoding for a set of byte strings (e.g. attribute values).

    Args:
        samples: Byte strings sharing one encoding
        candidates: Encodings to try

    Returns:
        Name of the encoding chosen by ``decode_text`` for the joined samples
    """
    joined = b"\n".join(sample for sample in samples if sample)
    if not joined:
        return "utf-8"
    return decode_text(joined, candidates).encoding
