from __future__ import annotations

import logging
import re

log = logging.getLogger("pobot.languages")

DEFAULT_PLURAL_FORMS = "nplurals=2; plural=(n != 1);"

_SLAVIC_3 = (
    "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : "
    "n%10>=2 && n%10<=4 && (n%100<10 || n%100>=20) ? 1 : 2);"
)
_ONE = "nplurals=1; plural=0;"
_GT_ONE = "nplurals=2; plural=(n > 1);"

# Regional codes take precedence over the base-language rows at the bottom.
PLURAL_FORMS: dict[str, str] = {
    "af": DEFAULT_PLURAL_FORMS,
    "ar": (
        "nplurals=6; plural=(n==0 ? 0 : n==1 ? 1 : n==2 ? 2 : "
        "n%100>=3 && n%100<=10 ? 3 : n%100>=11 ? 4 : 5);"
    ),
    "az": DEFAULT_PLURAL_FORMS,
    "bg_BG": DEFAULT_PLURAL_FORMS,
    "bn_BD": DEFAULT_PLURAL_FORMS,
    "ca": DEFAULT_PLURAL_FORMS,
    "cs_CZ": "nplurals=3; plural=(n==1) ? 0 : (n>=2 && n<=4) ? 1 : 2;",
    "cy": "nplurals=4; plural=(n==1) ? 0 : (n==2) ? 1 : (n != 8 && n != 11) ? 2 : 3;",
    "da_DK": DEFAULT_PLURAL_FORMS,
    "de_DE": DEFAULT_PLURAL_FORMS,
    "de_CH": DEFAULT_PLURAL_FORMS,
    "el": DEFAULT_PLURAL_FORMS,
    "en_AU": DEFAULT_PLURAL_FORMS,
    "en_CA": DEFAULT_PLURAL_FORMS,
    "en_GB": DEFAULT_PLURAL_FORMS,
    "en_US": DEFAULT_PLURAL_FORMS,
    "en_ZA": DEFAULT_PLURAL_FORMS,
    "eo": DEFAULT_PLURAL_FORMS,
    "es_AR": DEFAULT_PLURAL_FORMS,
    "es_CL": DEFAULT_PLURAL_FORMS,
    "es_CO": DEFAULT_PLURAL_FORMS,
    "es_ES": DEFAULT_PLURAL_FORMS,
    "es_MX": DEFAULT_PLURAL_FORMS,
    "es_PE": DEFAULT_PLURAL_FORMS,
    "es_VE": DEFAULT_PLURAL_FORMS,
    "et": DEFAULT_PLURAL_FORMS,
    "eu": DEFAULT_PLURAL_FORMS,
    "fa_IR": _ONE,
    "fi": DEFAULT_PLURAL_FORMS,
    "fo": DEFAULT_PLURAL_FORMS,
    "fr_BE": _GT_ONE,
    "fr_CA": _GT_ONE,
    "fr_FR": _GT_ONE,
    "fy": DEFAULT_PLURAL_FORMS,
    "ga": "nplurals=5; plural=n==1 ? 0 : n==2 ? 1 : n<7 ? 2 : n<11 ? 3 : 4;",
    "gd": (
        "nplurals=4; plural=(n==1 || n==11) ? 0 : (n==2 || n==12) ? 1 : "
        "(n > 2 && n < 20) ? 2 : 3;"
    ),
    "gl_ES": DEFAULT_PLURAL_FORMS,
    "he_IL": DEFAULT_PLURAL_FORMS,
    "hi_IN": DEFAULT_PLURAL_FORMS,
    "hr": (
        "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : "
        "n%10>=2 && n%10<=4 && (n%100<10 || n%100>=20) ? 1 : 2);"
    ),
    "hu_HU": DEFAULT_PLURAL_FORMS,
    "hy": DEFAULT_PLURAL_FORMS,
    "id_ID": _ONE,
    "is_IS": "nplurals=2; plural=(n%10!=1 || n%100==11);",
    "it_IT": DEFAULT_PLURAL_FORMS,
    "ja": _ONE,
    "ka_GE": _ONE,
    "ko_KR": _ONE,
    "ku": DEFAULT_PLURAL_FORMS,
    "lt_LT": (
        "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : "
        "n%10>=2 && (n%100<10 || n%100>=20) ? 1 : 2);"
    ),
    "lv_LV": "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : n!=0 ? 1 : 2);",
    "mk_MK": "nplurals=2; plural=n==1 || n%10==1 ? 0 : 1;",
    "mn": DEFAULT_PLURAL_FORMS,
    "ms_MY": _ONE,
    "nb_NO": DEFAULT_PLURAL_FORMS,
    "ne_NP": DEFAULT_PLURAL_FORMS,
    "nl_NL": DEFAULT_PLURAL_FORMS,
    "nl_BE": DEFAULT_PLURAL_FORMS,
    "nn_NO": DEFAULT_PLURAL_FORMS,
    "pl_PL": (
        "nplurals=3; plural=(n==1 ? 0 : "
        "n%10>=2 && n%10<=4 && (n%100<10 || n%100>=20) ? 1 : 2);"
    ),
    "pt_BR": _GT_ONE,
    "pt_PT": DEFAULT_PLURAL_FORMS,
    "ro_RO": "nplurals=3; plural=(n==1 ? 0 : (n==0 || (n%100 > 0 && n%100 < 20)) ? 1 : 2);",
    "ru_RU": _SLAVIC_3,
    "sk_SK": "nplurals=3; plural=(n==1) ? 0 : (n>=2 && n<=4) ? 1 : 2;",
    "sl_SI": "nplurals=4; plural=(n%100==1 ? 0 : n%100==2 ? 1 : n%100==3 || n%100==4 ? 2 : 3);",
    "sq_AL": DEFAULT_PLURAL_FORMS,
    "sr_RS": _SLAVIC_3,
    "sv_SE": DEFAULT_PLURAL_FORMS,
    "th": _ONE,
    "tr_TR": _GT_ONE,
    "uk": _SLAVIC_3,
    "vi": _ONE,
    "zh_CN": _ONE,
    "zh_HK": _ONE,
    "zh_TW": _ONE,
    "en": DEFAULT_PLURAL_FORMS,
    "de": DEFAULT_PLURAL_FORMS,
    "es": DEFAULT_PLURAL_FORMS,
    "fr": _GT_ONE,
    "it": DEFAULT_PLURAL_FORMS,
    "pt": DEFAULT_PLURAL_FORMS,
    "nl": DEFAULT_PLURAL_FORMS,
    "ru": _SLAVIC_3,
    "pl": (
        "nplurals=3; plural=(n==1 ? 0 : "
        "n%10>=2 && n%10<=4 && (n%100<10 || n%100>=20) ? 1 : 2);"
    ),
    "cs": "nplurals=3; plural=(n==1) ? 0 : (n>=2 && n<=4) ? 1 : 2;",
    "zh": _ONE,
    "ko": _ONE,
    "tr": _GT_ONE,
    "sr": _SLAVIC_3,
}

LANGUAGE_NAMES: dict[str, str] = {
    "af": "Afrikaans",
    "am": "Amharic",
    "ar": "Arabic",
    "az": "Azerbaijani",
    "be": "Belarusian",
    "bg": "Bulgarian",
    "bn": "Bengali",
    "bn_BD": "Bengali (Bangladesh)",
    "bn_IN": "Bengali (India)",
    "bs": "Bosnian",
    "ca": "Catalan",
    "cs": "Czech",
    "cy": "Welsh",
    "da": "Danish",
    "de": "German",
    "de_AT": "German (Austria)",
    "de_CH": "German (Switzerland)",
    "el": "Greek",
    "en": "English",
    "en_US": "English (US)",
    "en_GB": "English (UK)",
    "en_AU": "English (Australia)",
    "en_CA": "English (Canada)",
    "eo": "Esperanto",
    "es": "Spanish",
    "es_ES": "Spanish (Spain)",
    "es_MX": "Spanish (Mexico)",
    "es_AR": "Spanish (Argentina)",
    "et": "Estonian",
    "eu": "Basque",
    "fa": "Persian",
    "fi": "Finnish",
    "fr": "French",
    "fr_FR": "French (France)",
    "fr_CA": "French (Canada)",
    "fr_BE": "French (Belgium)",
    "ga": "Irish",
    "gd": "Scottish Gaelic",
    "gl": "Galician",
    "gu": "Gujarati",
    "he": "Hebrew",
    "hi": "Hindi",
    "hr": "Croatian",
    "hu": "Hungarian",
    "hy": "Armenian",
    "id": "Indonesian",
    "is": "Icelandic",
    "it": "Italian",
    "ja": "Japanese",
    "ka": "Georgian",
    "kk": "Kazakh",
    "km": "Khmer",
    "kn": "Kannada",
    "ko": "Korean",
    "lt": "Lithuanian",
    "lv": "Latvian",
    "mk": "Macedonian",
    "ml": "Malayalam",
    "mn": "Mongolian",
    "ms": "Malay",
    "nb": "Norwegian Bokmål",
    "ne": "Nepali",
    "nl": "Dutch",
    "nn": "Norwegian Nynorsk",
    "pl": "Polish",
    "pt": "Portuguese",
    "pt_BR": "Portuguese (Brazil)",
    "pt_PT": "Portuguese (Portugal)",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "sl": "Slovenian",
    "sq": "Albanian",
    "sr": "Serbian",
    "sv": "Swedish",
    "sw": "Swahili",
    "ta": "Tamil",
    "te": "Telugu",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "ur": "Urdu",
    "uz": "Uzbek",
    "vi": "Vietnamese",
    "zh": "Chinese",
    "zh_CN": "Chinese (China)",
    "zh_HK": "Chinese (Hong Kong)",
    "zh_TW": "Chinese (Taiwan)",
}

DEFAULT_LOCALES: dict[str, str] = {
    "af": "af_ZA",
    "ar": "ar_AR",
    "bg": "bg_BG",
    "cs": "cs_CZ",
    "da": "da_DK",
    "de": "de_DE",
    "el": "el_GR",
    "en": "en_US",
    "es": "es_ES",
    "fi": "fi_FI",
    "fr": "fr_FR",
    "he": "he_IL",
    "hu": "hu_HU",
    "it": "it_IT",
    "ja": "ja_JP",
    "ko": "ko_KR",
    "nl": "nl_NL",
    "pl": "pl_PL",
    "pt": "pt_PT",
    "ru": "ru_RU",
    "sk": "sk_SK",
    "sv": "sv_SE",
    "tr": "tr_TR",
    "uk": "uk_UA",
    "zh": "zh_CN",
}

ISO_639_2: dict[str, str] = {
    "ru": "rus", "fr": "fra", "en": "eng", "de": "deu", "es": "spa",
    "it": "ita", "pt": "por", "zh": "zho", "ja": "jpn", "ko": "kor",
    "ar": "ara", "hi": "hin", "th": "tha", "vi": "vie", "tr": "tur",
    "pl": "pol", "nl": "nld", "sv": "swe", "da": "dan", "no": "nor",
    "fi": "fin", "hu": "hun", "cs": "ces", "sk": "slk", "sl": "slv",
    "hr": "hrv", "sr": "srp", "bg": "bul", "ro": "ron", "uk": "ukr",
    "be": "bel", "lt": "lit", "lv": "lav", "et": "est", "ga": "gle",
    "cy": "cym", "is": "isl", "mk": "mkd", "sq": "sqi", "el": "ell",
    "he": "heb", "fa": "fas", "id": "ind", "ms": "msa", "ka": "kat",
    "hy": "hye", "az": "aze", "kk": "kaz", "uz": "uzb", "af": "afr",
}

LOCALE_FORMATS = ("target_lang", "wp_locale", "iso_639_1", "iso_639_2")

_NPLURALS_RE = re.compile(r"nplurals\s*=\s*(\d+)")


def base_language(code: str) -> str:
    return re.split(r"[_-]", code, maxsplit=1)[0].lower()


def same_base_language(a: str, b: str) -> bool:
    return base_language(a) == base_language(b)


def plural_forms_for(code: str | None) -> str:
    if not code:
        log.warning("no language code given; using default plural forms")
        return DEFAULT_PLURAL_FORMS
    if code in PLURAL_FORMS:
        return PLURAL_FORMS[code]
    base = code.replace("-", "_").split("_")[0]
    if base in PLURAL_FORMS:
        return PLURAL_FORMS[base]
    log.warning("no plural forms for %s; using default %s", code, DEFAULT_PLURAL_FORMS)
    return DEFAULT_PLURAL_FORMS


def plural_count(plural_forms: str | None) -> int:
    if not plural_forms:
        return 2
    match = _NPLURALS_RE.search(plural_forms)
    if not match:
        return 2
    return int(match.group(1))


def _lookup(code: str) -> str | None:
    if code in LANGUAGE_NAMES:
        return code
    lowered = code.lower()
    for key in LANGUAGE_NAMES:
        if key.lower() == lowered or key.lower().replace("_", "-") == lowered:
            return key
    return None


def normalize_language(value: str) -> str:
    """Return the catalog code for a user-supplied language code or name.

    Accepts ``fr``, ``fr_FR``, ``fr-fr`` or ``French``; unknown input is
    returned stripped but otherwise untouched.
    """
    text = (value or "").strip()
    if not text:
        return text
    known = _lookup(text)
    if known:
        return known
    lowered = text.lower()
    for key, name in LANGUAGE_NAMES.items():
        if name.lower() == lowered:
            return key
    if re.fullmatch(r"[a-z]{2}", lowered) and lowered in DEFAULT_LOCALES:
        return DEFAULT_LOCALES[lowered]
    return text


def language_name(code: str) -> str:
    known = _lookup(code)
    if known:
        return LANGUAGE_NAMES[known]
    base = base_language(code)
    return LANGUAGE_NAMES.get(base, code)


def file_locale(code: str, fmt: str = "target_lang") -> str:
    normalized = normalize_language(code)
    if fmt == "wp_locale":
        if "_" in normalized:
            return normalized
        base = base_language(normalized)
        for key in LANGUAGE_NAMES:
            if key.startswith(base + "_"):
                return key
        return DEFAULT_LOCALES.get(base, f"{base}_{base.upper()}")
    if fmt == "iso_639_1":
        return base_language(normalized)
    if fmt == "iso_639_2":
        base = base_language(normalized)
        return ISO_639_2.get(base, base)
    return normalized


def header_locale(code: str) -> str:
    return normalize_language(code).replace("_", "-")
