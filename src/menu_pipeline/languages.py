"""
Target languages offered for translation and the currency each one prices in.
"""
from enum import Enum
from typing import Union


class TargetLanguage(Enum):
    CHINESE_TW = '繁體中文'
    ENGLISH = 'English'
    KOREAN = '한국어'
    FRENCH = 'Français'
    SPANISH = 'Español'
    THAI = 'ไทย'
    FILIPINO = 'Tagalog'
    VIETNAMESE = 'Tiếng Việt'
    JAPANESE = '日本語'


TARGET_CURRENCIES = {
    TargetLanguage.CHINESE_TW: 'TWD',
    TargetLanguage.ENGLISH: 'USD',
    TargetLanguage.KOREAN: 'KRW',
    TargetLanguage.FRENCH: 'EUR',
    TargetLanguage.SPANISH: 'EUR',
    TargetLanguage.THAI: 'THB',
    TargetLanguage.FILIPINO: 'PHP',
    TargetLanguage.VIETNAMESE: 'VND',
    TargetLanguage.JAPANESE: 'JPY',
}

# English labels users are likely to type
_ALIASES = {
    'traditional chinese': TargetLanguage.CHINESE_TW,
    'chinese': TargetLanguage.CHINESE_TW,
    'english': TargetLanguage.ENGLISH,
    'korean': TargetLanguage.KOREAN,
    'french': TargetLanguage.FRENCH,
    'spanish': TargetLanguage.SPANISH,
    'thai': TargetLanguage.THAI,
    'filipino': TargetLanguage.FILIPINO,
    'tagalog': TargetLanguage.FILIPINO,
    'vietnamese': TargetLanguage.VIETNAMESE,
    'japanese': TargetLanguage.JAPANESE,
}


def resolve_language(value: Union[str, TargetLanguage]) -> TargetLanguage:
    """
    Resolve a language given as enum, enum name, display value or English label.

    Raises:
        ValueError: if the language is not supported
    """
    if isinstance(value, TargetLanguage):
        return value

    text = (value or '').strip()
    for lang in TargetLanguage:
        if text == lang.value or text.upper() == lang.name:
            return lang

    alias = _ALIASES.get(text.lower())
    if alias:
        return alias

    raise ValueError(f"Unsupported target language: {value}")


def get_target_currency(language: Union[str, TargetLanguage]) -> str:
    """Currency the menu prices are converted into for this language."""
    return TARGET_CURRENCIES[resolve_language(language)]
