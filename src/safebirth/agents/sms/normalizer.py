"""Normalizer: DETERMINISTIC only, no LLM calls.

Detects the message language from its script and rewrites Arabic keywords
to the canonical English tokens so a single grammar can parse both.
"""

import re

from safebirth.domain.enums import Language
from safebirth.services.phone import to_ascii_digits

from .contracts import NormalizedMessage

# Share of Arabic-block characters above which a message counts as Arabic
ARABIC_THRESHOLD = 0.20

_ARABIC_CHAR = re.compile(r"[\u0600-\u06FF]")
_WHITESPACE = re.compile(r"\s+")

# ---------------------------------------------------------------------------
# Keyword tables (Arabic -> canonical)
# ---------------------------------------------------------------------------

COMMAND_KEYWORDS = {
    "تسجيل": "REG",
    "ام": "MOTHER",
    "أم": "MOTHER",
    "متطوع": "VOLUNTEER",
    "متطوعة": "VOLUNTEER",
    "طوارئ": "EMERGENCY",
    "مساعدة": "SUPPORT",
    "قبول": "ACCEPT",
    "انهاء": "COMPLETE",
    "إنهاء": "COMPLETE",
    "الغاء": "CANCEL",
    "إلغاء": "CANCEL",
    "غير متاح": "OFFLINE",
    "غير متاحة": "OFFLINE",
    "متاح": "AVAILABLE",
    "متاحة": "AVAILABLE",
    "مشغول": "BUSY",
    "مشغولة": "BUSY",
    "حالة": "STATUS",
    "الأوامر": "HELP",
    "الاوامر": "HELP",
    "أوامر": "HELP",
}

FIELD_KEYWORDS = {
    "مخيم": "CAMP",
    "منطقة": "ZONE",
    "مناطق": "ZONE",
    "موعد": "DUE",
    "خطورة": "RISK",
    "الاسم": "NAME",
    "اسم": "NAME",
    "مهارة": "SKILL",
}

VALUE_KEYWORDS = {
    "عالية": "HIGH",
    "عالي": "HIGH",
    "متوسطة": "MEDIUM",
    "متوسط": "MEDIUM",
    "منخفضة": "LOW",
    "منخفض": "LOW",
    "قابلة": "MIDWIFE",
    "ممرضة": "NURSE",
    "ممرض": "NURSE",
    "مدربة": "TRAINED",
    "مدرب": "TRAINED",
    "مجتمعي": "COMMUNITY",
    "مجتمعية": "COMMUNITY",
}

KEYWORDS: dict[str, str] = {**COMMAND_KEYWORDS, **FIELD_KEYWORDS, **VALUE_KEYWORDS}


def _compile_keyword(keyword: str) -> re.Pattern:
    # Token-bounded so a short keyword never rewrites part of a longer word
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)")


# Longest first so "غير متاح" wins over "متاح" and "متاحة" over "متاح"
_REWRITES: list[tuple[re.Pattern, str]] = [
    (_compile_keyword(keyword), KEYWORDS[keyword])
    for keyword in sorted(KEYWORDS, key=len, reverse=True)
]


def detect_language(text: str | None) -> Language:
    """Classify ``text`` as Arabic when more than 20% of it is Arabic script."""
    if not text:
        return Language.ENGLISH
    arabic_count = len(_ARABIC_CHAR.findall(text))
    if arabic_count / len(text) > ARABIC_THRESHOLD:
        return Language.ARABIC
    return Language.ENGLISH


def normalize_text(text: str | None) -> str:
    """Rewrite ``text`` into canonical form. Idempotent."""
    if not text:
        return ""
    result = _WHITESPACE.sub(" ", to_ascii_digits(text).replace("،", ","))
    for pattern, canonical in _REWRITES:
        result = pattern.sub(canonical, result)
    return _WHITESPACE.sub(" ", result).strip()


def normalize(text: str | None) -> NormalizedMessage:
    """Detect language and canonicalise one inbound message."""
    return NormalizedMessage(
        language=detect_language(text),
        text=normalize_text(text),
        original=text or "",
    )
