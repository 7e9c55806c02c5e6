"""
Parser for NCBI BLAST pairwise text output (``-outfmt 0``), as written by BLASTN, BLASTX and BLASTP.

Both BLAST+ and legacy BLAST layouts are accepted::

    Query= read1 description

    Length=150
    ...
    > WP_005682092.1 hypothetical protein
    Length=516

     Score = 52.8 bits (117),  Expect = 3e-05
     Identities = 40/45 (89%), Gaps = 0/45 (0%)
     Frame = +2

    Query  2    MKLAAE...  136
                MK+AAE
    Sbjct  18   MKVAAE...  62

BLAST reports bit scores and oriented 1-based coordinates directly, so no header constants are needed.
"""
from re import compile as regex
from typing import NamedTuple, Optional

from alnlib.core.match import Match, percent_identity, translated_frame, PLUS, MINUS
from alnlib.io import AlignmentIterator, AlignmentFile, AlignmentFormat, BlastMode, ParserError, UnsupportedFormatError


# Constants ------------------------------------------------------------------------------------------------------------
_PROGRAM = regex(rb'^(T?BLAST[NXP])\b')
_PROGRAM_MODES = {b'BLASTN': BlastMode.BLASTN, b'BLASTX': BlastMode.BLASTX, b'BLASTP': BlastMode.BLASTP}
_SCORE = regex(rb'Score\s*=\s*([-+\d.eE]+)\s*bits\s*\((\d+)\)')
_EXPECT = regex(rb'Expect(?:\(\d+\))?\s*=\s*([^\s,]+)')
_STRAND = regex(rb'Strand\s*=\s*(Plus|Minus)\s*/\s*(Plus|Minus)')
_FRAME = regex(rb'Frame\s*=\s*([+-]\d)')
_LENGTH = regex(rb'^Length\s*=\s*([\d,]+)')
_LETTERS = regex(rb'\(([\d,]+) letters\)')
_HSP_END = (b'>', b'Query=', b'Score', b'Lambda', b'Database:', b'Effective search', b'Gapped', b'Matrix:')


# Classes --------------------------------------------------------------------------------------------------------------
class BlastHsp(NamedTuple):
    """One high-scoring pair; no lines means the query section had no hits."""
    query: bytes
    line_number: int
    query_length: int
    subject: bytes
    subject_length: int
    lines: tuple[bytes, ...]


@AlignmentFile.register(AlignmentFormat.BLAST_TEXT, modes=(BlastMode.BLASTN, BlastMode.BLASTX, BlastMode.BLASTP))
class BlastTextIterator(AlignmentIterator):
    """
    Reader for BLAST pairwise text reports.

    Queries reported with ``***** No hits found *****`` come out as unaligned batches.

    Examples:
        >>> with BlastTextIterator("reads.blastx.txt") as parser:
        ...     for n_matches, text in parser:
        ...         print(n_matches)
    """
    __slots__ = ('_query', '_query_line', '_query_length', '_has_hsps', '_subject', '_subject_length')
    format = AlignmentFormat.BLAST_TEXT

    @classmethod
    def sniff(cls, line: bytes) -> bool: return _PROGRAM.match(line) is not None

    def _read_header(self):
        self._query = self._subject = None
        self._query_line = self._query_length = self._subject_length = 0
        self._has_hsps = False
        program = _PROGRAM.match(self._cursor.next_line()).group(1)
        if self._mode is None:
            if (mode := _PROGRAM_MODES.get(program)) is None:
                raise UnsupportedFormatError(f'{program.decode()} reports are not supported')
            self._mode = mode

    def _start_query(self, line: bytes):
        parts = line[6:].split(None, 1)
        self._query = parts[0] if parts else b''
        self._query_line = self._cursor.line_number
        self._query_length = self._subject_length = 0
        self._subject = None
        self._has_hsps = False

    def _read_block(self) -> Optional[BlastHsp]:
        cursor = self._cursor
        while True:
            line = cursor.peek_line()
            if line is None or line.startswith(b'Query='):
                if self._query is not None and not self._has_hsps:
                    self._has_hsps = True
                    return BlastHsp(self._query, self._query_line, self._query_length, b'', 0, ())
                if line is None: return None
                self._start_query(cursor.next_line())
                continue

            cursor.next_line()
            if self._query is None: continue
            stripped = line.strip()
            if line.startswith(b'>'):
                parts = line[1:].split(None, 1)
                self._subject, self._subject_length = (parts[0] if parts else b''), 0
            elif m := _LENGTH.match(stripped):
                length = int(m[1].replace(b',', b''))
                if self._subject is None: self._query_length = length
                else: self._subject_length = length
            elif self._subject is None and (m := _LETTERS.search(stripped)):
                self._query_length = int(m[1].replace(b',', b''))
            elif self._subject is not None and stripped.startswith(b'Score'):
                line_number = cursor.line_number
                lines = [stripped]
                while (upcoming := cursor.peek_line()) is not None and not upcoming.lstrip().startswith(_HSP_END):
                    lines.append(cursor.next_line().strip())
                self._has_hsps = True
                return BlastHsp(self._query, line_number, self._query_length, self._subject, self._subject_length,
                                tuple(lines))

    def _make_match(self, block: BlastHsp, ordinal: int) -> Optional[Match]:
        if not block.lines: return None
        score_line = block.lines[0]
        if (score := _SCORE.search(score_line)) is None:
            raise ParserError(f'Could not parse score line: {score_line!r}')
        if (expect := _EXPECT.search(score_line)) is None:
            raise ParserError(f'No expect value in score line: {score_line!r}')
        expect_text = expect[1]
        # Legacy BLAST abbreviates 1e-10 as e-10
        if expect_text.startswith(b'e'): expect_text = b'1' + expect_text

        query_rows, subject_rows = [], []
        strands, frame = None, None
        for line in block.lines[1:]:
            if line.startswith(b'Query'): query_rows.append(_alignment_row(line))
            elif line.startswith(b'Sbjct'): subject_rows.append(_alignment_row(line))
            elif m := _STRAND.search(line): strands = (m[1], m[2])
            elif m := _FRAME.search(line): frame = int(m[1])
        if not query_rows or len(query_rows) != len(subject_rows):
            raise ParserError(f'Incomplete alignment for subject {block.subject!r}')

        query_start, query_end = query_rows[0][0], query_rows[-1][2]
        subject_start, subject_end = subject_rows[0][0], subject_rows[-1][2]
        query_aligned = b''.join(r[1] for r in query_rows)
        subject_aligned = b''.join(r[1] for r in subject_rows)

        translated = self._mode.translated
        query_strand = subject_strand = PLUS
        if translated:
            if frame is None:
                reverse = query_start > query_end
                # Reverse frames count from the query end
                if reverse and block.query_length <= 0:
                    raise ParserError(f'No Frame line and unknown length for query {block.query!r}')
                frame = translated_frame(query_start, reverse, block.query_length)
            query_strand = MINUS if frame < 0 else PLUS
        else:
            frame = 0
            if strands is not None:
                query_strand = MINUS if strands[0] == b'Minus' else PLUS
                subject_strand = MINUS if strands[1] == b'Minus' else PLUS

        return Match(
            query=block.query, subject=block.subject, subject_length=block.subject_length,
            bit_score=float(score[1]), expect=float(expect_text), raw_score=int(score[2]),
            percent_identity=percent_identity(query_aligned, subject_aligned),
            query_start=query_start, query_end=query_end, subject_start=subject_start, subject_end=subject_end,
            query_aligned=query_aligned, subject_aligned=subject_aligned,
            query_strand=query_strand, subject_strand=subject_strand, frame=frame, translated=translated,
            ordinal=ordinal
        )


# Functions ------------------------------------------------------------------------------------------------------------
def _alignment_row(line: bytes) -> tuple[int, bytes, int]:
    """Parses ``Query  1   ACGT  4`` (or legacy ``Query: 1 ACGT 4``) into (start, text, end)."""
    tokens = line.split()
    if len(tokens) != 4: raise ParserError(f'Expected 4 fields in alignment row, found {len(tokens)}')
    return int(tokens[1]), tokens[2], int(tokens[3])
