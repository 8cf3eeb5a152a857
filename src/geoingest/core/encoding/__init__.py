"""
Character encoding detection and recovery.
"""

from geoingest.core.encoding.decoder import (
    WINDOWS_1252_TABLE,
    DecodedText,
    decode_text,
    decode_windows_1252_manual,
    detect_bytes_encoding,
    encoding_for_codepage,
    recover_text,
)

__all__ = [
    "WINDOWS_1252_TABLE",
    "DecodedText",
    "decode_text",
    "decode_windows_1252_manual",
    "detect_bytes_encoding",
    "encoding_for_codepage",
    "recover_text",
]
