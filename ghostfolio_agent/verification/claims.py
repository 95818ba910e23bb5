import re

# Placeholder for a decimal point while splitting into sentences.
_DECIMAL_MARK = "\x00"

_DECIMAL_POINT = re.compile(r"(\d)\.(\d)")
_SENTENCE_END = re.compile(r"[.!?]+")

_PERCENT_CLAIM = re.compile(r"\d+[.,]?\d*\s*%")
_DOLLAR_CLAIM = re.compile(r"\$[\d,]+\.?\d*")
_DECIMAL_CLAIM = re.compile(r"[\d,]+\.\d{2,}")

# Numbers with optional thousands separators, not glued to word characters.
CLAIM_NUMBER = re.compile(r"(?<!\w)-?\d{1,3}(?:,\d{3})*(?:\.\d+)?(?!\w)", re.ASCII)


def split_sentences(text: str) -> list[str]:
    """Splits on runs of . ! ? without breaking decimals like 15.3."""
    protected = _DECIMAL_POINT.sub(rf"\1{_DECIMAL_MARK}\2", text)
    sentences = []
    for part in _SENTENCE_END.split(protected):
        part = part.replace(_DECIMAL_MARK, ".").strip()
        if part:
            sentences.append(part)
    return sentences


def is_numeric_claim(sentence: str) -> bool:
    return bool(
        _PERCENT_CLAIM.search(sentence)
        or _DOLLAR_CLAIM.search(sentence)
        or _DECIMAL_CLAIM.search(sentence)
    )


def extract_claims(text: str) -> list[str]:
    """
    Returns the sentences of `text` that assert a numeric fact: a
    percentage, a dollar amount, or a number with two or more decimals.
    Order is preserved and duplicates are kept.
    """
    return [s for s in split_sentences(text) if is_numeric_claim(s)]


def extract_claim_numbers(claim: str) -> list[str]:
    """Raw numeric tokens of a claim, thousands separators included."""
    return CLAIM_NUMBER.findall(claim)
