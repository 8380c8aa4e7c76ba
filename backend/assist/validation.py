from __future__ import annotations

import re

from .templates import DISCLAIMER, HEADER_LINE

MIN_RESPONSE_CHARS = 180
MIN_SECTION_BULLETS = 2

_HEADER_RE = re.compile(r"Jawaban AI", re.IGNORECASE)
_DISCLAIMER_RE = re.compile(r"Keputusan akhir tetap oleh dokter", re.IGNORECASE)
_EDUCATION_RE = re.compile(r"^\s*Edukasi awal\b", re.IGNORECASE | re.MULTILINE)
_RED_FLAG_RE = re.compile(r"^\s*Tanda bahaya\b", re.IGNORECASE | re.MULTILINE)
_CLOSING_RE = re.compile(r"Keputusan akhir tetap", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*[-*•]\s+")

_GLYPH_BULLET_RE = re.compile(r"^\s*(?:\*\s+|•\s*)", re.MULTILINE)
_BOLD_BULLET_RE = re.compile(r"^\s*-\s*\*\*(.*?)\*\*", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")


def normalize_ai_text(text: str | None) -> str:
    output = (text or "").strip()
    if not output:
        return output

    output = output.replace("\r\n", "\n")
    output = _BOLD_BULLET_RE.sub(r"- \1", output)
    output = _BOLD_RE.sub(r"\1", output)
    output = _GLYPH_BULLET_RE.sub("- ", output)

    if not _HEADER_RE.search(output):
        output = f"{HEADER_LINE}\n{output}"
    if not _DISCLAIMER_RE.search(output):
        output = f"{output}\n\n{DISCLAIMER}"
    return output


def count_bullets_between(lines: list[str], start: re.Pattern[str], end: re.Pattern[str] | None) -> int:
    start_index = next((idx for idx, line in enumerate(lines) if start.search(line)), -1)
    if start_index < 0:
        return 0
    count = 0
    for line in lines[start_index + 1 :]:
        if end is not None and end.search(line):
            break
        if _BULLET_RE.match(line):
            count += 1
    return count


def needs_fallback(text: str | None) -> bool:
    if not text or len(text) < MIN_RESPONSE_CHARS:
        return True
    if not _EDUCATION_RE.search(text) or not _RED_FLAG_RE.search(text):
        return True
    lines = text.split("\n")
    education_count = count_bullets_between(lines, _EDUCATION_RE, _RED_FLAG_RE)
    red_flag_count = count_bullets_between(lines, _RED_FLAG_RE, _CLOSING_RE)
    return education_count < MIN_SECTION_BULLETS or red_flag_count < MIN_SECTION_BULLETS
