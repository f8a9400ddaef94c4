"""Cleanup for free-text bank and category names typed into the bot or API.

Messengers and copy-pasted bank screenshots bring in no-break spaces,
zero-width joiners and stray punctuation that would otherwise split one
catalog entry into several look-alikes.
"""

_KEPT_PUNCTUATION = frozenset("-.,")


def _keep(ch: str) -> bool:
    if " " <= ch <= "~":
        return True
    return ch.isalpha() or ch.isdigit() or ch in _KEPT_PUNCTUATION


def clean_name(value: str) -> str:
    chars = []
    for ch in value or "":
        if ch.isspace():
            chars.append(" ")
        elif _keep(ch):
            chars.append(ch)
    return " ".join("".join(chars).split())
