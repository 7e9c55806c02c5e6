from typing import Union, BinaryIO, Optional, Iterator
from pathlib import Path

from alnlib.io.open import Xopen


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class EndOfStream(EOFError):
    """Raised when a line is requested from an exhausted cursor."""
    pass


# Classes --------------------------------------------------------------------------------------------------------------
class LineCursor:
    """
    Line-oriented reader over a (possibly compressed) alignment dump with one line of lookahead.

    Lines are returned as bytes without their terminators. The cursor also keeps the per-file error tally that parsers
    compare against their tolerance, so diagnostics and the tolerance policy share one line counter.

    Examples:
        >>> with LineCursor("hits.maf.gz") as cursor:
        ...     header = cursor.next_line_starting_with(b'a ')
    """
    __slots__ = ('_opener', '_lines', '_lookahead', '_line_number', '_n_errors', 'max_errors')

    def __init__(self, file: Union[str, Path, BinaryIO], max_errors: int = 1000):
        """
        Args:
            file: Path, '-' for stdin, or a binary handle.
            max_errors: Number of per-record errors at which parsing is abandoned.
        """
        self._opener = Xopen(file)
        self._lookahead: Optional[bytes] = None
        self._line_number = 0
        self._n_errors = 0
        self.max_errors = max_errors
        try:
            self._lines: Iterator[bytes] = iter(self._opener.__enter__())
            self._fill()
        except BaseException:
            self._opener.close()
            raise

    def _fill(self):
        try:
            self._lookahead = next(self._lines).rstrip(b'\r\n')
        except StopIteration:
            self._lookahead = None

    @property
    def name(self) -> str: return self._opener.name
    @property
    def line_number(self) -> int:
        """1-based number of the most recently consumed line, 0 before the first."""
        return self._line_number
    @property
    def n_errors(self) -> int: return self._n_errors

    def has_next_line(self) -> bool: return self._lookahead is not None

    def peek_line(self) -> Optional[bytes]:
        """Returns the next line without consuming it, or None at the end of the stream."""
        return self._lookahead

    def next_line(self) -> bytes:
        """
        Consumes and returns the next line.

        Raises:
            EndOfStream: If the stream is exhausted.
        """
        if (line := self._lookahead) is None:
            raise EndOfStream(f'Unexpected end of {self.name} after line {self._line_number}')
        self._line_number += 1
        self._fill()
        return line

    def next_line_starting_with(self, prefix: bytes) -> Optional[bytes]:
        """
        Skips lines until one starts with the prefix and consumes it.

        Args:
            prefix: Required line prefix, e.g. b'a ' for a MAF score line.

        Returns:
            The matching line, or None if the stream ended first.
        """
        while self._lookahead is not None:
            line = self.next_line()
            if line.startswith(prefix): return line
        return None

    def increment_errors(self) -> int:
        """Counts one more per-record error and returns the new total."""
        self._n_errors += 1
        return self._n_errors

    def close(self):
        """Releases the underlying stream. Safe to call more than once."""
        self._opener.close()
        self._lines = iter(())
        self._lookahead = None

    def __iter__(self):
        while self._lookahead is not None: yield self.next_line()

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()
