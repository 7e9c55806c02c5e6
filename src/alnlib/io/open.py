from io import IOBase
from typing import Union, BinaryIO, Optional
from pathlib import Path
from sys import stdin
from importlib import import_module


# Classes --------------------------------------------------------------------------------------------------------------
class PeekableHandle:
    """
    A wrapper around a non-seekable BinaryIO stream (pipes, stdin) that allows peeking at the first bytes without
    consuming them. Used to sniff compression and alignment dialects.
    """
    __slots__ = ('_stream', '_peek_buffer', '_buffer_pos', '_buffer_len')

    def __init__(self, stream: BinaryIO, max_peek: int = 4096):
        self._stream = stream
        self._peek_buffer = stream.read(max_peek)
        self._buffer_pos = 0
        self._buffer_len = len(self._peek_buffer)

    def peek(self, size: int = -1) -> bytes:
        """
        Returns buffered bytes without advancing the stream position.

        Args:
            size: Number of bytes to peek. If -1, returns the entire buffer.
        """
        if size == -1 or size > self._buffer_len: return self._peek_buffer[self._buffer_pos:]
        return self._peek_buffer[self._buffer_pos:self._buffer_pos + size]

    def read(self, size: int = -1) -> bytes:
        if self._buffer_pos >= self._buffer_len: return self._stream.read(size)
        if size == -1:
            chunk = self._peek_buffer[self._buffer_pos:]
            self._buffer_pos = self._buffer_len
            return chunk + self._stream.read()
        available = self._buffer_len - self._buffer_pos
        if size <= available:
            chunk = self._peek_buffer[self._buffer_pos:self._buffer_pos + size]
            self._buffer_pos += size
            return chunk
        chunk = self._peek_buffer[self._buffer_pos:]
        self._buffer_pos = self._buffer_len
        return chunk + self._stream.read(size - available)

    def readable(self) -> bool: return True

    def __iter__(self):
        """
        Iterates over lines, stitching the tail of the peek buffer to the first line of the stream.

        Yields:
            Lines including their terminators.
        """
        if self._buffer_pos < self._buffer_len:
            fragment = self._peek_buffer[self._buffer_pos:]
            self._buffer_pos = self._buffer_len
            lines = fragment.splitlines(keepends=True)
            for i, line in enumerate(lines):
                if i == len(lines) - 1 and not line.endswith(b'\n'):
                    yield line + self._stream.readline()
                else:
                    yield line
        yield from self._stream

    def close(self):
        if hasattr(self._stream, 'close'): self._stream.close()


class Xopen:
    """
    Opens alignment dumps for binary reading, transparently decompressing gzip, bzip2, xz and zstd input.

    Compression is detected from magic bytes rather than the file extension, so renamed or piped files are handled.

    Examples:
        >>> with Xopen("hits.maf.gz") as handle:
        ...     first = handle.readline()
    """
    _MAGIC = {
        b'\x1f\x8b': 'gzip',
        b'\x42\x5a\x68': 'bz2',
        b'\xfd7zXZ\x00': 'lzma',
        b'\x28\xb5\x2f\xfd': 'zstandard'
    }
    _MIN_N_BYTES = max(len(i) for i in _MAGIC.keys())
    _OPEN_FUNCS = {}
    __slots__ = ('file', '_handle', '_raw', '_close_on_exit')

    def __init__(self, file: Union[str, Path, BinaryIO]):
        """
        Args:
            file: Path, '-' for stdin, or an already open binary handle. Handles passed in are not closed on exit
                unless a decompressor had to be wrapped around them.
        """
        self.file = file
        self._handle: Optional[BinaryIO] = None
        self._raw: Optional[BinaryIO] = None
        self._close_on_exit = False

    @property
    def name(self) -> str:
        if isinstance(self.file, (str, Path)): return str(self.file)
        return str(getattr(self.file, 'name', '<stream>'))

    def __enter__(self) -> BinaryIO:
        self._handle = self._open()
        return self._handle

    def __exit__(self, exc_type, exc_val, exc_tb): self.close()

    def close(self):
        """Closes the handle if it was opened by this instance."""
        if self._close_on_exit and self._handle is not None: self._handle.close()
        # Decompressors do not close a file object they were handed
        if self._raw is not None: self._raw.close()
        self._handle = self._raw = None

    def _get_opener(self, pkg_name: str):
        """
        Retrieves the open function for a compression package, importing it if necessary.

        Raises:
            ModuleNotFoundError: If the package (e.g. the optional 'zstandard') is not installed.
        """
        if pkg_name not in self._OPEN_FUNCS:
            try:
                self._OPEN_FUNCS[pkg_name] = import_module(pkg_name).open
            except ImportError:
                raise ModuleNotFoundError(f"Compression module '{pkg_name}' not installed.")
        return self._OPEN_FUNCS[pkg_name]

    def _decompressor(self, start: bytes) -> Optional[str]:
        for magic, pkg in self._MAGIC.items():
            if start.startswith(magic): return pkg
        return None

    def _open(self) -> BinaryIO:
        should_close = False
        if isinstance(self.file, (IOBase, PeekableHandle)): raw_stream = self.file
        elif str(self.file) in {'-', 'stdin'}: raw_stream = stdin.buffer
        else:
            raw_stream = open(Path(self.file).expanduser(), mode='rb')
            should_close = True

        try:
            seekable = raw_stream.seekable()
        except (AttributeError, ValueError, OSError):
            seekable = False

        if seekable:
            start = raw_stream.read(self._MIN_N_BYTES)
            raw_stream.seek(0)
        else:
            raw_stream = PeekableHandle(raw_stream)
            start = raw_stream.peek(self._MIN_N_BYTES)

        if pkg := self._decompressor(start):
            self._close_on_exit = True
            if should_close: self._raw = raw_stream
            try:
                return self._get_opener(pkg)(raw_stream, mode='rb')
            except ModuleNotFoundError:
                self.close()
                raise
        self._close_on_exit = should_close
        return raw_stream
