"""
Text Preprocessing for Phonemization.

Rewrites "written" text into the "spoken" form the phonemizer and the
Kokoro model expect, before it is handed to espeak-ng.

Preprocessing Steps:
    1. Markdown links keep their label: "[docs](http://x)" -> "docs"
    2. Decimals and web addresses are spelled: "3.14" -> "3 point 1 4"
    3. Code blocks and `tick quotes` have their dots spoken
    4. Byte sizes, money and honorifics are expanded
       ("5MB " -> "5 megabyte ", "$5" -> "5 dollars", "Dr. Smith" -> "Doctor Smith")
    5. Clock times lose their colon: "10:30" -> "10 30"
    6. Brackets become commas; dashes, ticks and braces become spaces
    7. Punctuation is re-spaced: "a ,b" -> "a, b"
    8. Leading punctuation, blank lines and repeated spaces are removed

The module constants (PUNCTUATION, REPLACEABLE, ...) are shared with the
tokenizer, which uses them to restore the punctuation espeak-ng drops.

Example:
    >>> from tts_stream.utils.text import preprocess_text
    >>> preprocess_text("Dr. Who paid $5 at 10:30 ,then left.")
    'Doctor Who paid 5 dollars at 10 30, then left.'

See Also:
    - tts/tokenizer.py: Calls preprocess_text before espeak-ng
"""
from __future__ import annotations

import re

# Characters espeak-ng splits lines on
PUNCTUATION = ";:,.!?…¿\n"

# Symbols espeak-ng discards; restored from the source text afterwards
REPLACEABLE = "\n;:,.!?¡¿—…\"«»“”()"

# Symbols that need a space in front of them in the phoneme string
SPACE_NEEDING = "\"…<«“"

# Characters replaced by a space before phonemization
DELETABLE = "-`()[]{}"

CURRENCIES = {
    "$": "dollar",
    "€": "euro",
    "£": "pound",
    "¥": "yen",
    "₹": "rupee",
    "₽": "ruble",
    "₩": "won",
    "₺": "lira",
    "₫": "dong",
}

_BYTE_UNITS = {
    "KB": " kilobyte",
    "MB": " megabyte",
    "GB": " gigabyte",
    "TB": " terabyte",
}

# Markdown headers, longest prefix first
_HEADERS = (
    ("\n######", "\n Subnote: "),
    ("\n#####", "\n Minor note: "),
    ("\n####", "\n Note: "),
    ("\n###", "\n Minor Header: "),
    ("\n##", "\n Subheader: "),
    ("\n#", "\n Header: "),
)

_HEADER_LINK_RE = re.compile(r"\[(.*?)\]\(.*?\)")
_HEADER_IMG_LINK_RE = re.compile(r"\[.*?\[(.*?)\].*?\]\(.*?\)|\[(.*?)\]\(.*?\)")
_DECIMAL_RE = re.compile(r"(\d)\.(\d+)")
_WEB_URL_RE = re.compile(
    r"\b(https?://)?(www\.)?[a-zA-Z0-9]+\b"
    r"|\b[a-zA-Z0-9]+\.(com|net|org|io|edu|gov|mil|info|biz|co|us|uk|ca|de|fr|jp|au|cn|ru|gr)\b"
)
_CODE_BLOCK_RE = re.compile(r"^```[A-Za-z]{0,10}\n([\s\S]*?)\n```(?:\n|$)", re.MULTILINE)
_TICK_QUOTE_RE = re.compile(r"(?<!`)`([^`]+)`(?!`)")
_BYTE_NUMBER_RE = re.compile(r"\b(\d+(?:\.\d+)?)(KB|MB|GB|TB)(\s)")
_MONEY_RE = re.compile(r"[$€£¥₹₽₩₺₫]\d+(?:\.\d+)?")
_DOCTOR_RE = re.compile(r"\bD[Rr]\.(?= [A-Z])")
_MISTER_RE = re.compile(r"\b(Mr|MR)\.(?= [A-Z])")
_MISS_RE = re.compile(r"\b(Ms|MS)\.(?= [A-Z])")
_WHITESPACE_RE = re.compile(r"\x20{2,}")
_TIME_RE = re.compile(r"(?<!:)\b([1-9]|1[0-2]):([0-5]\d)\b(?!:)")


def _speak_decimal(m: re.Match) -> str:
    return f"{m.group(1)} point {' '.join(m.group(2))}"


def _speak_code_line(line: str) -> str:
    com = max(line.find("//"), line.find("#"))
    if com < 0:
        return line.replace(".", " dot ")
    return line[:com].replace(".", " dot ") + line[com:]


def _flip_money(m: re.Match) -> str:
    symbol, value = m.group(0)[0], m.group(0)[1:]
    plural = "" if value == "1" else "s"
    return f"{value} {CURRENCIES[symbol]}{plural}"


def _speak_bytes(m: re.Match) -> str:
    unit = _BYTE_UNITS.get(m.group(2), m.group(2))
    return f"{m.group(1)}{unit}{m.group(3)}"


def _replace_until_stable(text: str, old: str, new: str) -> str:
    while old in text:
        text = text.replace(old, new)
    return text


def preprocess_text(text: str) -> str:
    """
    Convert written text to the spoken form expected by the phonemizer.

    Args:
        text: Raw input text (may contain markdown).

    Returns:
        Preprocessed text, stripped. Empty input stays empty.
    """
    text = _HEADER_LINK_RE.sub(r"\1", text)
    text = _HEADER_IMG_LINK_RE.sub(lambda m: (m.group(1) or "") + (m.group(2) or ""), text)
    for _ in range(5):
        text = _DECIMAL_RE.sub(_speak_decimal, text)
        text = _WEB_URL_RE.sub(lambda m: m.group(0).replace(".", " dot "), text)

    text = text.replace("\r\n", "\n")
    text = _CODE_BLOCK_RE.sub(
        lambda m: "\n".join(_speak_code_line(line) for line in m.group(1).split("\n")),
        text,
    )
    text = _TICK_QUOTE_RE.sub(lambda m: m.group(1).replace(".", " dot "), text)
    text = text.replace("C#", "C SHARP").replace(".NET", "dot net").replace("->", " to ")
    text = _BYTE_NUMBER_RE.sub(_speak_bytes, text)

    text = text.replace("/", " slash ")
    for marker, spoken in _HEADERS:
        text = text.replace(marker, spoken)
    text = text.replace(".com", "dot com").replace("https://", "https ")
    text = text.replace("**", "*").replace("‘", "\"").replace("’", "\"")

    text = _MONEY_RE.sub(_flip_money, text)
    text = _DOCTOR_RE.sub("Doctor", text)
    text = _MISTER_RE.sub("Mister", text)
    text = _MISS_RE.sub("Miss", text)
    text = _WHITESPACE_RE.sub(" ", text)
    text = _TIME_RE.sub(r"\1 \2", text)

    for bracket in "{}()":
        text = text.replace(bracket, ",")
    for c in DELETABLE:
        text = text.replace(c, " ")

    for punc in PUNCTUATION:
        text = _replace_until_stable(text, f" {punc}", punc)
        text = text.replace(punc, f"{punc} ")

    while text and (text[0] in REPLACEABLE or text[0] in DELETABLE):
        text = text[1:]
    text = _replace_until_stable(text, "\n\n", "\n")
    text = _replace_until_stable(text, "  ", " ")
    return text.strip()


def collect_symbols(text: str) -> str:
    """
    Prepare preprocessed text for espeak-ng.

    Every replaceable symbol becomes a comma so espeak-ng breaks the
    output line there; newlines are padded so the next line starts with
    a space.
    """
    text = text.replace("\n", "\n ")
    for c in REPLACEABLE:
        text = text.replace(c, ",")
    return _replace_until_stable(text, " ,", ", ")
