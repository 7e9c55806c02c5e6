"""
Module for streaming alignment dumps into canonical match lines, one query batch at a time.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Union, BinaryIO, Optional, Generator, Callable, Type, Protocol
from warnings import warn

from alnlib import ParserWarning
from alnlib.core.buffer import OutputBuffer, BufferView
from alnlib.core.match import Match
from alnlib.core.retention import TopMatches
from alnlib.io.cursor import LineCursor, EndOfStream


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class AlignmentFileError(Exception):
    """Base class for fatal alignment file errors."""
    pass

class FormatMismatchError(AlignmentFileError):
    """Raised when a file does not carry the structural signature of the requested dialect."""
    pass

class UnsupportedFormatError(AlignmentFileError):
    """Raised when no parser is registered for a format and mode combination."""
    pass

class MissingHeaderError(AlignmentFileError):
    """Raised when required header values (e.g. scoring constants) are not found."""
    pass

class TooManyParseErrors(AlignmentFileError):
    """Raised once the number of malformed records reaches the configured maximum."""
    pass

class ParserError(Exception):
    """Raised for a malformed individual record; recoverable."""
    pass


# Enums ----------------------------------------------------------------------------------------------------------------
class AlignmentFormat(str, Enum):
    """Supported alignment dump dialects."""
    MAF = 'maf'
    BLAST_TEXT = 'blast-text'


class BlastMode(str, Enum):
    """Alignment mode: untranslated nucleotide, translated nucleotide-vs-protein, or protein."""
    BLASTN = 'blastn'
    BLASTX = 'blastx'
    BLASTP = 'blastp'

    @property
    def translated(self) -> bool: return self is BlastMode.BLASTX

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower(): return member
        return None


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True)
class ParserConfig:
    """
    Per-instance parser settings.

    Attributes:
        max_matches: Number of best matches kept per query (K).
        max_errors: Number of malformed records at which parsing is abandoned.
        min_score: Candidates with a lower bit score are dropped before retention.
        max_expected: Candidates with a higher expect value are dropped before retention.
        min_percent_identity: Candidates with a lower identity fraction are dropped before retention.
    """
    max_matches: int = 100
    max_errors: int = 1000
    min_score: Optional[float] = None
    max_expected: Optional[float] = None
    min_percent_identity: Optional[float] = None

    def __post_init__(self):
        if self.max_matches < 1: raise ValueError(f'max_matches must be at least 1, got {self.max_matches}')
        if self.max_errors < 1: raise ValueError(f'max_errors must be at least 1, got {self.max_errors}')

    @classmethod
    def from_kwargs(cls, **kwargs) -> 'ParserConfig':
        """Builds a config from keyword arguments, rejecting unknown names."""
        names = {f.name for f in fields(cls)}
        if unknown := set(kwargs) - names:
            raise TypeError(f"Unknown parser options: {', '.join(sorted(unknown))}")
        return cls(**kwargs)

    def accepts(self, match: Match) -> bool:
        """Whether a candidate passes the optional score, expect and identity filters."""
        if self.min_score is not None and match.bit_score < self.min_score: return False
        if self.max_expected is not None and match.expect > self.max_expected: return False
        if self.min_percent_identity is not None and match.percent_identity < self.min_percent_identity: return False
        return True


class RawBlock(Protocol):
    """What the batching loop needs from a dialect's raw alignment block."""
    @property
    def query(self) -> bytes: ...
    @property
    def line_number(self) -> int: ...


class AlignmentIterator(ABC):
    """
    Abstract base class for dialect parsers.

    A parser binds a LineCursor, checks the dialect signature, reads any header and then reads one raw block ahead.
    Each call to `next()` consumes all consecutive blocks of one query, keeps the best `max_matches` of them and
    writes their canonical lines to the output buffer.

    Subclasses implement `sniff`, `_read_header`, `_read_block` and `_make_match`.
    """
    __slots__ = ('_cursor', '_config', '_mode', '_matches', '_buffer', '_lookahead', '_n_reads')
    _SUPPORTED_MODES: tuple[BlastMode, ...] = ()

    def __init__(self, file: Union[str, Path, BinaryIO, LineCursor], mode: Union[str, BlastMode] = None,
                 config: ParserConfig = None):
        """
        Args:
            file: Path, binary handle, or an existing LineCursor (which the parser takes ownership of).
            mode: Alignment mode; inferred from the header when omitted.
            config: Parser settings; defaults to ParserConfig().

        Raises:
            FormatMismatchError: If the input does not look like this dialect.
            MissingHeaderError: If required header values are missing.
            UnsupportedFormatError: If the mode is not handled by this dialect.
        """
        self._config = config or ParserConfig()
        self._cursor = file if isinstance(file, LineCursor) else LineCursor(file, self._config.max_errors)
        self._cursor.max_errors = self._config.max_errors
        self._mode: Optional[BlastMode] = None
        self._matches = TopMatches(self._config.max_matches)
        self._buffer = OutputBuffer()
        self._lookahead: Optional[RawBlock] = None
        self._n_reads = 0
        try:
            self._mode = _as_mode(mode)
            _skip_blank_lines(self._cursor)
            if not self.sniff(self._cursor.peek_line() or b''):
                raise FormatMismatchError(f'{self._cursor.name} is not in {self.format.value} format')
            self._read_header()
            if self._mode is None:
                raise UnsupportedFormatError(f'Could not determine the alignment mode of {self._cursor.name}')
            if self._mode not in self._SUPPORTED_MODES:
                raise UnsupportedFormatError(f'{self.format.value} does not support mode {self._mode.value}')
            self._lookahead = self._read_block()
        except BaseException:
            self._cursor.close()
            raise

    @property
    @abstractmethod
    def format(self) -> AlignmentFormat: ...
    @classmethod
    @abstractmethod
    def sniff(cls, line: bytes) -> bool:
        """Checks the first non-blank line for the dialect's signature."""
        ...
    @abstractmethod
    def _read_header(self):
        """Parses header values and infers the mode if it was not given."""
        ...
    @abstractmethod
    def _read_block(self) -> Optional[RawBlock]:
        """Reads the next raw block from the cursor, or returns None at the end of the stream."""
        ...
    @abstractmethod
    def _make_match(self, block: RawBlock, ordinal: int) -> Optional[Match]:
        """
        Derives a Match from a raw block.

        Returns:
            None for blocks that only mark a query without alignments.

        Raises:
            ParserError, ValueError, IndexError: For malformed records.
        """
        ...

    @property
    def mode(self) -> BlastMode: return self._mode
    @property
    def config(self) -> ParserConfig: return self._config
    @property
    def max_matches(self) -> int: return self._config.max_matches
    @property
    def n_reads(self) -> int:
        """Number of query batches produced so far."""
        return self._n_reads
    @property
    def n_errors(self) -> int: return self._cursor.n_errors
    @property
    def line_number(self) -> int: return self._cursor.line_number
    @property
    def text(self) -> BufferView:
        """Canonical lines of the latest batch; valid only until the next call to next()."""
        return self._buffer.view()
    @property
    def text_length(self) -> int: return len(self._buffer)

    def has_next(self) -> bool: return self._lookahead is not None

    def next(self) -> int:
        """
        Processes all alignments of the next query.

        Returns:
            Number of match lines written to the buffer (0 for a query without matches), or -1 at the end of stream.

        Raises:
            TooManyParseErrors: If the error count reaches the configured maximum.
        """
        self._buffer.clear()
        if self._lookahead is None: return -1

        query = self._lookahead.query
        self._n_reads += 1
        self._matches.clear()
        accepts = self._config.accepts
        ordinal = 0
        while self._lookahead is not None and self._lookahead.query == query:
            block = self._lookahead
            try:
                if (match := self._make_match(block, ordinal)) is not None:
                    ordinal += 1
                    if accepts(match): self._matches.offer(match)
            except (ParserError, ValueError, IndexError) as e:
                self._record_error(block, e)
            self._lookahead = self._read_block()

        if not self._matches:
            self._buffer.write_line(query)
            return 0
        for match in self._matches: self._buffer.write_line(match.to_bytes())
        return len(self._matches)

    def _record_error(self, block: RawBlock, error: Exception):
        warn(f'Error parsing {self._cursor.name} near line {block.line_number}: {error}', ParserWarning,
             stacklevel=3)
        if self._cursor.increment_errors() >= self._cursor.max_errors:
            raise TooManyParseErrors(
                f'Too many errors ({self._cursor.n_errors}) parsing {self._cursor.name}') from error

    def batches(self) -> Generator[tuple[int, bytes], None, None]:
        """
        Yields (number of matches, canonical text) per query until the end of stream.

        The text is a copy, so it can be kept after the next batch is read.
        """
        while (n := self.next()) != -1:
            yield n, self._buffer.tobytes()

    def __iter__(self): return self.batches()

    def close(self): self._cursor.close()
    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()


class FormatSpec:
    """Registered parser and the modes it accepts for one format."""
    __slots__ = ('parser', 'modes')
    def __init__(self, parser: Type[AlignmentIterator], modes: tuple[BlastMode, ...]):
        self.parser = parser
        self.modes = modes


class AlignmentFile:
    """
    Main entry point: picks the dialect parser for a file and alignment mode.

    The format is sniffed from the first non-blank line when not given, and the mode is inferred by the parser from
    the file header when not given.

    Examples:
        >>> with AlignmentFile.open("hits.maf.gz", mode="blastx", max_matches=25) as parser:
        ...     for n, text in parser:
        ...         sink.write(text)
    """
    _REGISTRY: dict[AlignmentFormat, FormatSpec] = {}
    Format = AlignmentFormat
    Mode = BlastMode

    @classmethod
    def register(cls, fmt: Union[str, AlignmentFormat], modes: tuple[BlastMode, ...]) -> Callable:
        """Decorator registering an AlignmentIterator subclass for a format."""
        def decorator(parser: Type[AlignmentIterator]) -> Type[AlignmentIterator]:
            parser._SUPPORTED_MODES = tuple(modes)
            cls._REGISTRY[AlignmentFormat(fmt)] = FormatSpec(parser, tuple(modes))
            return parser
        return decorator

    @classmethod
    def supports(cls, fmt: Union[str, AlignmentFormat], mode: Union[str, BlastMode]) -> bool:
        """Whether a parser is registered for the format and mode; unknown names are simply not supported."""
        try:
            fmt, mode = AlignmentFormat(fmt), BlastMode(mode)
        except ValueError:
            return False
        spec = cls._REGISTRY.get(fmt)
        return spec is not None and mode in spec.modes

    @classmethod
    def open(cls, file: Union[str, Path, BinaryIO], fmt: Union[str, AlignmentFormat] = None,
             mode: Union[str, BlastMode] = None, config: ParserConfig = None, **config_kwargs) -> AlignmentIterator:
        """
        Opens an alignment dump for parsing.

        Args:
            file: Path, '-' for stdin, or a binary handle; compressed input is detected automatically.
            fmt: Dialect; sniffed from the content when omitted.
            mode: Alignment mode; inferred from the header when omitted.
            config: Parser settings. Alternatively pass ParserConfig fields as keyword arguments.

        Returns:
            A ready AlignmentIterator.

        Raises:
            UnsupportedFormatError: If no parser handles the format and mode.
        """
        if config is None: config = ParserConfig.from_kwargs(**config_kwargs)
        elif config_kwargs: raise TypeError('Pass either config or keyword options, not both')

        fmt = _as_format(fmt)
        mode = _as_mode(mode)
        if fmt is not None and (spec := cls._REGISTRY.get(fmt)) is not None:
            if mode is not None and mode not in spec.modes:
                raise UnsupportedFormatError(f'No parser for {fmt.value} in mode {mode.value}')
            return spec.parser(file, mode=mode, config=config)

        if fmt is not None: raise UnsupportedFormatError(f'No parser registered for format {fmt.value}')

        cursor = LineCursor(file, config.max_errors)
        try:
            spec = cls._sniff_format(cursor)
            if mode is not None and mode not in spec.modes:
                raise UnsupportedFormatError(f'No parser for {spec.parser.__name__} in mode {mode.value}')
        except BaseException:
            cursor.close()
            raise
        return spec.parser(cursor, mode=mode, config=config)

    @classmethod
    def _sniff_format(cls, cursor: LineCursor) -> FormatSpec:
        """
        Detects the dialect from the first non-blank line.

        Raises:
            UnsupportedFormatError: If no registered parser recognises the content.
        """
        _skip_blank_lines(cursor)
        line = cursor.peek_line() or b''
        for spec in cls._REGISTRY.values():
            if spec.parser.sniff(line): return spec
        raise UnsupportedFormatError(f'Could not determine the alignment format of {cursor.name}')


# Functions ------------------------------------------------------------------------------------------------------------
def _skip_blank_lines(cursor: LineCursor):
    while cursor.has_next_line() and not cursor.peek_line().strip(): cursor.next_line()


def _as_format(fmt) -> Optional[AlignmentFormat]:
    if fmt is None: return None
    try: return AlignmentFormat(fmt)
    except ValueError: raise UnsupportedFormatError(f'Unknown alignment format: {fmt}') from None


def _as_mode(mode) -> Optional[BlastMode]:
    if mode is None: return None
    try: return BlastMode(mode)
    except ValueError: raise UnsupportedFormatError(f'Unknown alignment mode: {mode}') from None


# Import submodules to populate the registry
from alnlib.io import maf, blast
