"""
Whitespace tokenizer.
Delimiters are space, tab, newline, carriage return and form feed.
"""

import re
from typing import Iterator

DELIMITERS = ' \t\n\r\f'
_TOKEN_RE = re.compile(r'[^ \t\n\r\f]+')


class TokenStream:
    """Lazy, restartable sequence of the tokens of one line"""

    __slots__ = ('line',)

    def __init__(self, line: str):
        self.line = line

    def __iter__(self) -> Iterator[str]:
        for match in _TOKEN_RE.finditer(self.line):
            yield match.group(0)

    def __repr__(self):
        return f"TokenStream({self.line!r})"


def tokenize(line: str) -> TokenStream:
    """Split a line on runs of whitespace"""
    return TokenStream(line)
