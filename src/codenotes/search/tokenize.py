"""Tokenizer shared by indexing and querying."""

import re

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were
    been be have has had do does did will would should could may might can
    this that these those it its we you they them their our your my me
    """.split()
)

_SPLIT = re.compile(r"[\s.,;:!?()\[\]{}<>'\"/\\]+")


def tokenize(text: str, case_sensitive: bool = False) -> list[str]:
    """Split ``text`` into index terms.

    Tokens of one character and stop words (matched case-insensitively) are
    dropped. Order and duplicates are preserved so callers can count
    frequencies and positions.
    """
    source = text if case_sensitive else text.lower()
    return [
        token
        for token in _SPLIT.split(source)
        if len(token) > 1 and token.lower() not in STOP_WORDS
    ]
