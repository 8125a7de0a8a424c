"""
Sentence Segmenter for Sentence-Sequenced Playback.

Splits free text into an ordered list of sentences. Every sentence keeps its
own terminal punctuation and trailing whitespace verbatim, so joining the
sentences reproduces the source text exactly.

Architecture:
    text → iter_sentences() → [sentence, sentence, ...] → PlaybackController

Delimiters:
    - one or more of ``.``, ``!``, ``?`` followed by optional whitespace
    - a run of two or more newlines (paragraph break)

Usage:
    sentences = segment("Hello world. How are you? I am fine!")
    # ['Hello world. ', 'How are you? ', 'I am fine!']
"""

import re
from typing import Iterator, List

# Punctuation run (with trailing whitespace) or a paragraph break.
DELIMITER_PATTERN = re.compile(r"[.!?]+\s*|\n{2,}\s*")


def iter_sentences(text: str) -> Iterator[str]:
    """
    Yield the sentences of ``text`` in order.

    A delimiter is glued to the content before it. Delimiters with no content
    in front of them are merged into the neighbouring sentence rather than
    emitted on their own, so consecutive delimiters collapse into a single
    boundary. A trailing run without a delimiter becomes the last sentence.

    The generator is pure: calling it again on the same text restarts it and
    yields the same sentences.

    Args:
        text: Source text.

    Yields:
        Sentences, each ending with its delimiter and trailing whitespace.
    """
    if not text or not text.strip():
        return

    pending = ""  # sentence waiting to see whether more delimiters follow
    leading = ""  # delimiter text seen before any content
    position = 0

    for match in DELIMITER_PATTERN.finditer(text):
        content = text[position:match.start()]
        delimiter = match.group()
        position = match.end()

        if content.strip():
            if pending:
                yield pending
            pending = leading + content + delimiter
            leading = ""
        elif pending:
            pending += content + delimiter
        else:
            leading += content + delimiter

    tail = text[position:]
    if tail.strip():
        if pending:
            yield pending
        pending = leading + tail
    elif pending:
        pending += tail
    else:
        # Only delimiters and whitespace: nothing to read.
        return

    yield pending


def segment(text: str) -> List[str]:
    """Return the sentences of ``text`` as a list. Empty input yields ``[]``."""
    return list(iter_sentences(text))


def clamp_index(index: int, sentence_count: int) -> int:
    """Clamp a navigation target to ``[0, sentence_count - 1]`` (0 when empty)."""
    if sentence_count <= 0:
        return 0
    return max(0, min(index, sentence_count - 1))


__all__ = ["DELIMITER_PATTERN", "clamp_index", "iter_sentences", "segment"]
