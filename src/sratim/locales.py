"""Site locale pair."""

LOCALES: tuple[str, ...] = ("en", "he")
DEFAULT_LOCALE = "en"

LOCALE_NAMES: dict[str, str] = {
    "en": "English",
    "he": "עברית",
}


def is_supported(code: str) -> bool:
    return code in LOCALES
