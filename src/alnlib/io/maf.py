"""
Parser for LAST alignments in MAF format.

Each alignment is a block of an ``a`` line carrying the raw score and expect value, followed by two ``s`` lines for
the reference (subject) and the read (query)::

    a score=159 EG2=1e-08 E=4.3e-17
    s WP_005682092.1                       18 33 + 516 SAEANENERRWNDDKIDRKNQDSTNNYDKTRMK
    s HISEQ:457:C5366ACXX:2:1101:2641:2226  1 99 + 100 TAEANENERHWNDDKIERKNQDPTNHYDKSRMR

Bit scores are computed from the raw score with the ``lambda`` and ``K`` values LAST writes to the header.
"""
from re import compile as regex
from typing import NamedTuple, Optional
from warnings import warn

from alnlib import ParserWarning
from alnlib.core.match import Match, bit_score, percent_identity, oriented_interval, translated_frame, PLUS, MINUS
from alnlib.io import AlignmentIterator, AlignmentFile, AlignmentFormat, BlastMode, MissingHeaderError, ParserError


# Constants ------------------------------------------------------------------------------------------------------------
_FRAMESHIFT_OPTION = regex(rb'^(?:-F\d*|F=\d+)$')


# Classes --------------------------------------------------------------------------------------------------------------
class MafBlock(NamedTuple):
    query: bytes
    line_number: int
    score_line: bytes
    subject_line: bytes
    query_line: bytes


@AlignmentFile.register(AlignmentFormat.MAF, modes=(BlastMode.BLASTN, BlastMode.BLASTX, BlastMode.BLASTP))
class MafIterator(AlignmentIterator):
    """
    Reader for LAST MAF output, in untranslated (blastn-like), translated (blastx-like, ``lastal -F``) or protein
    (blastp-like) mode. The protein mode is never inferred from the header and must be asked for.

    Examples:
        >>> with MafIterator("reads.maf", mode="blastx") as parser:
        ...     while parser.next() != -1:
        ...         sink.write(parser.text.tobytes())
    """
    __slots__ = ('_lambda', '_k')
    format = AlignmentFormat.MAF

    @classmethod
    def sniff(cls, line: bytes) -> bool: return line.startswith(b'# LAST') or line.startswith(b'##maf')

    @property
    def scoring_parameters(self) -> tuple[float, float]:
        """The (lambda, K) pair read from the header."""
        return self._lambda, self._k

    def _read_header(self):
        """
        Reads the comment header, extracting lambda and K.

        Alignments that come before the scoring parameters cannot be scored; they are skipped with a warning.

        Raises:
            MissingHeaderError: If no ``lambda=... K=...`` line is found before the end of the stream.
        """
        self._lambda = self._k = None
        translated = False
        n_skipped = 0
        cursor = self._cursor
        while cursor.has_next_line():
            if cursor.peek_line().startswith(b'a '):
                if self._lambda is not None: break
                n_skipped += 1
            line = cursor.next_line()
            if not line.startswith(b'#'): continue
            tokens = line.split()
            translated = translated or any(_FRAMESHIFT_OPTION.match(t) for t in tokens)
            if self._lambda is None and (values := _key_values(tokens)).get(b'lambda'):
                try:
                    self._lambda, self._k = float(values[b'lambda']), float(values[b'K'])
                except (KeyError, ValueError):
                    self._lambda = self._k = None
        if self._lambda is None or self._k is None:
            raise MissingHeaderError(f'Failed to parse lambda and K from the header of {cursor.name}')
        if n_skipped:
            warn(f'Skipped {n_skipped} alignment(s) preceding the lambda and K values in {cursor.name}', ParserWarning,
                 stacklevel=3)
        if self._k <= 0: raise MissingHeaderError(f'Invalid scoring parameter K={self._k} in {cursor.name}')
        if self._mode is None: self._mode = BlastMode.BLASTX if translated else BlastMode.BLASTN

    def _read_block(self) -> Optional[MafBlock]:
        cursor = self._cursor
        if (score_line := cursor.next_line_starting_with(b'a ')) is None: return None
        line_number = cursor.line_number
        subject_line = cursor.next_line_starting_with(b's ')
        query_line = cursor.next_line_starting_with(b's ') if subject_line is not None else None
        if query_line is None:
            warn(f'Truncated alignment block at line {line_number} of {cursor.name}', ParserWarning, stacklevel=2)
            return None
        parts = query_line.split(None, 2)
        return MafBlock(parts[1] if len(parts) > 1 else b'', line_number, score_line, subject_line, query_line)

    def _make_match(self, block: MafBlock, ordinal: int) -> Match:
        query_tokens = _sequence_tokens(block.query_line)
        subject_tokens = _sequence_tokens(block.subject_line)

        query_reversed = _is_reverse(query_tokens[4])
        query_start, query_end = oriented_interval(int(query_tokens[2]), int(query_tokens[3]), query_reversed)
        translated = self._mode.translated
        frame = translated_frame(query_start, query_reversed, int(query_tokens[5])) if translated else 0

        subject_reversed = _is_reverse(subject_tokens[4])
        subject_start, subject_end = oriented_interval(int(subject_tokens[2]), int(subject_tokens[3]),
                                                       subject_reversed)

        values = _key_values(block.score_line.split())
        if b'score' not in values: raise ParserError(f'No score in alignment line: {block.score_line!r}')
        raw_score = int(values[b'score'])
        expect = float(values.get(b'E', 0))

        query_aligned, subject_aligned = query_tokens[6], subject_tokens[6]
        return Match(
            query=block.query, subject=subject_tokens[1], subject_length=int(subject_tokens[5]),
            bit_score=bit_score(raw_score, self._lambda, self._k), expect=expect, raw_score=raw_score,
            percent_identity=percent_identity(query_aligned, subject_aligned),
            query_start=query_start, query_end=query_end, subject_start=subject_start, subject_end=subject_end,
            query_aligned=query_aligned, subject_aligned=subject_aligned,
            query_strand=MINUS if query_reversed else PLUS, subject_strand=MINUS if subject_reversed else PLUS,
            frame=frame, translated=translated, ordinal=ordinal
        )


# Functions ------------------------------------------------------------------------------------------------------------
def _key_values(tokens: list[bytes]) -> dict[bytes, bytes]:
    """Collects ``key=value`` tokens, e.g. from ``a score=159 E=4.3e-17``."""
    return dict(t.split(b'=', 1) for t in tokens if b'=' in t)


def _sequence_tokens(line: bytes) -> list[bytes]:
    """Splits an ``s`` line into: s, name, start, size, strand, source size, text."""
    tokens = line.split()
    if len(tokens) != 7: raise ParserError(f'Expected 7 fields in sequence line, found {len(tokens)}')
    return tokens


def _is_reverse(strand: bytes) -> bool:
    if strand == b'+': return False
    if strand == b'-': return True
    raise ParserError(f'Invalid strand: {strand!r}')
