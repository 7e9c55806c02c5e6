"""
Module for match records and the statistics derived from raw alignment fields.
"""
from math import log
from typing import Optional

import numpy as np


# Constants ------------------------------------------------------------------------------------------------------------
_LN2 = log(2)
PLUS, MINUS = b'Plus', b'Minus'


# Functions ------------------------------------------------------------------------------------------------------------
def bit_score(raw_score: int, lambda_: float, k: float) -> float:
    """
    Converts a raw alignment score to a bit score using the Karlin-Altschul parameters.

    Args:
        raw_score: Raw score reported by the aligner.
        lambda_: Scale parameter of the scoring system.
        k: Search-space parameter of the scoring system.

    Returns:
        (lambda * raw_score - ln(K)) / ln(2)

    Examples:
        >>> round(bit_score(100, 0.3, 0.1), 2)
        46.6
    """
    return (lambda_ * raw_score - log(k)) / _LN2


def percent_identity(query_aligned: bytes, subject_aligned: bytes) -> float:
    """
    Fraction of aligned columns where query and subject carry the same character.

    Only the first min(len(query_aligned), len(subject_aligned)) columns are compared.

    Returns:
        A value in [0, 1]; 0 if either string is empty.
    """
    n = min(len(query_aligned), len(subject_aligned))
    if n == 0: return 0.0
    q = np.frombuffer(query_aligned, dtype=np.uint8, count=n)
    s = np.frombuffer(subject_aligned, dtype=np.uint8, count=n)
    return np.count_nonzero(q == s) / n


def oriented_interval(start0: int, length: int, reverse: bool) -> tuple[int, int]:
    """
    Converts a 0-based start and aligned span to 1-based inclusive coordinates.

    The reverse strand is expressed by coordinate order: the returned start is the larger coordinate.

    Returns:
        (start, end), with end >= start on the forward strand and start >= end on the reverse strand.
    """
    start = start0 + 1
    end = start + length - 1
    return (end, start) if reverse else (start, end)


def translated_frame(query_start: int, reverse: bool, query_length: int = 0) -> int:
    """
    Reading frame of a translated alignment, derived from the query side only.

    Args:
        query_start: Oriented 1-based query start (the larger coordinate on the reverse strand).
        reverse: Whether the query aligns on the reverse strand.
        query_length: Total query length, needed on the reverse strand where the frame depends on the 3' offset.

    Returns:
        One of 1, 2, 3 or -1, -2, -3.
    """
    if reverse: return -((query_length - query_start) % 3 + 1)
    return (query_start - 1) % 3 + 1


# Classes --------------------------------------------------------------------------------------------------------------
class Match:
    """
    One candidate alignment of a query against a subject, in canonical form.

    The ordinal is assigned per query batch in arrival order and only breaks ties between equal bit scores.
    The canonical line is built on first request and cached.
    """
    __slots__ = (
        'query', 'query_strand', 'subject', 'subject_length', 'subject_strand', 'bit_score', 'expect', 'raw_score',
        'percent_identity', 'query_start', 'query_end', 'subject_start', 'subject_end', 'query_aligned',
        'subject_aligned', 'frame', 'translated', 'ordinal', '_line'
    )

    def __init__(self, query: bytes, subject: bytes, subject_length: int, bit_score: float, expect: float,
                 raw_score: int, percent_identity: float, query_start: int, query_end: int, subject_start: int,
                 subject_end: int, query_aligned: bytes, subject_aligned: bytes, query_strand: bytes = PLUS,
                 subject_strand: bytes = PLUS, frame: int = 0, translated: bool = False, ordinal: int = 0):
        self.query = query
        self.query_strand = query_strand
        self.subject = subject
        self.subject_length = subject_length
        self.subject_strand = subject_strand
        self.bit_score = bit_score
        self.expect = expect
        self.raw_score = raw_score
        self.percent_identity = percent_identity
        self.query_start = query_start
        self.query_end = query_end
        self.subject_start = subject_start
        self.subject_end = subject_end
        self.query_aligned = query_aligned
        self.subject_aligned = subject_aligned
        self.frame = frame
        self.translated = translated
        self.ordinal = ordinal
        self._line: Optional[bytes] = None

    def __repr__(self):
        return (f"Match({self.query.decode('ascii', 'ignore')}->{self.subject.decode('ascii', 'ignore')}, "
                f"bit_score={self.bit_score:.1f}, ordinal={self.ordinal})")

    def __lt__(self, other: 'Match') -> bool:
        """Weaker-than: lower bit score, or equal score and arrived later."""
        if self.bit_score != other.bit_score: return self.bit_score < other.bit_score
        return self.ordinal > other.ordinal

    @property
    def sort_key(self) -> tuple[float, int]:
        """Best-first ordering key."""
        return -self.bit_score, self.ordinal

    def to_bytes(self) -> bytes:
        """
        The canonical tab-separated line, without terminator.

        Field order: query, query strand, subject, subject length, subject strand, bit score, expect, raw score,
        percent identity, query start, query end, subject start, subject end, query aligned, subject aligned and,
        for translated alignments, the frame.
        """
        if self._line is None:
            fields = [
                self.query, self.query_strand, self.subject, b'%d' % self.subject_length, self.subject_strand,
                b'%.1f' % self.bit_score, b'%.2g' % self.expect, b'%d' % self.raw_score,
                b'%.3f' % self.percent_identity, b'%d' % self.query_start, b'%d' % self.query_end,
                b'%d' % self.subject_start, b'%d' % self.subject_end, self.query_aligned, self.subject_aligned
            ]
            if self.translated: fields.append(b'%+d' % self.frame)
            self._line = b'\t'.join(fields)
        return self._line

    __bytes__ = to_bytes
