import bz2
import gzip
import io
import lzma

import pytest
from alnlib.io.cursor import LineCursor, EndOfStream
from alnlib.io.open import Xopen, PeekableHandle

CONTENT = b'# header\n\na score=1\r\ns ref 0 4 + 10 ACGT\ns read 0 4 + 4 ACGA\n'


class NonSeekable(io.RawIOBase):
    """Pipe-like stream: readable, not seekable."""
    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)
    def readable(self): return True
    def seekable(self): return False
    def readinto(self, b):
        chunk = self._inner.read(len(b))
        b[:len(chunk)] = chunk
        return len(chunk)


class TestLineCursor:
    def test_reads_lines_without_terminators(self):
        cursor = LineCursor(io.BytesIO(CONTENT))
        assert cursor.next_line() == b'# header'
        assert cursor.next_line() == b''
        assert cursor.next_line() == b'a score=1'  # \r\n stripped too
        assert cursor.line_number == 3

    def test_peek_does_not_consume(self):
        cursor = LineCursor(io.BytesIO(CONTENT))
        assert cursor.peek_line() == b'# header'
        assert cursor.line_number == 0
        assert cursor.next_line() == b'# header'
        assert cursor.peek_line() == b''

    def test_next_line_starting_with(self):
        cursor = LineCursor(io.BytesIO(CONTENT))
        assert cursor.next_line_starting_with(b's ') == b's ref 0 4 + 10 ACGT'
        assert cursor.line_number == 4
        assert cursor.next_line_starting_with(b's ') == b's read 0 4 + 4 ACGA'
        assert cursor.next_line_starting_with(b'a ') is None
        assert not cursor.has_next_line()

    def test_end_of_stream(self):
        cursor = LineCursor(io.BytesIO(b'only\n'))
        cursor.next_line()
        assert not cursor.has_next_line()
        assert cursor.peek_line() is None
        with pytest.raises(EndOfStream, match="after line 1"):
            cursor.next_line()
        assert issubclass(EndOfStream, EOFError)

    def test_last_line_without_newline(self):
        assert list(LineCursor(io.BytesIO(b'a\nb'))) == [b'a', b'b']

    def test_empty_input(self):
        cursor = LineCursor(io.BytesIO(b''))
        assert not cursor.has_next_line()
        assert cursor.next_line_starting_with(b'a') is None

    def test_error_counter(self):
        cursor = LineCursor(io.BytesIO(CONTENT), max_errors=5)
        assert cursor.n_errors == 0
        assert cursor.increment_errors() == 1
        assert cursor.increment_errors() == 2
        assert cursor.n_errors == 2
        assert cursor.max_errors == 5

    def test_close_is_idempotent(self):
        cursor = LineCursor(io.BytesIO(CONTENT))
        cursor.close()
        cursor.close()
        assert not cursor.has_next_line()

    def test_context_manager(self, tmp_path):
        path = tmp_path / 'plain.maf'
        path.write_bytes(CONTENT)
        with LineCursor(path) as cursor:
            assert cursor.name == str(path)
            assert cursor.next_line() == b'# header'
        assert not cursor.has_next_line()


class TestCompression:
    @pytest.mark.parametrize('compress', [gzip.compress, bz2.compress, lzma.compress])
    def test_compressed_files(self, tmp_path, compress):
        path = tmp_path / 'hits.maf.compressed'
        path.write_bytes(compress(CONTENT))
        with LineCursor(path) as cursor:
            assert list(cursor) == CONTENT.replace(b'\r', b'').splitlines()

    def test_zstandard(self, tmp_path):
        zstandard = pytest.importorskip('zstandard')
        path = tmp_path / 'hits.maf.zst'
        path.write_bytes(zstandard.ZstdCompressor().compress(CONTENT))
        with LineCursor(path) as cursor:
            assert cursor.next_line() == b'# header'

    def test_uncompressed_path_is_closed(self, tmp_path):
        path = tmp_path / 'plain.maf'
        path.write_bytes(CONTENT)
        opener = Xopen(path)
        handle = opener.__enter__()
        opener.close()
        assert handle.closed

    def test_caller_handle_is_left_open(self):
        handle = io.BytesIO(CONTENT)
        with Xopen(handle) as h:
            assert h is handle
        assert not handle.closed

    def test_non_seekable_plain_stream(self):
        cursor = LineCursor(NonSeekable(CONTENT))
        assert list(cursor) == CONTENT.replace(b'\r', b'').splitlines()

    def test_non_seekable_gzip_stream(self):
        cursor = LineCursor(NonSeekable(gzip.compress(CONTENT)))
        assert cursor.next_line() == b'# header'


class TestPeekableHandle:
    def test_peek_then_read(self):
        handle = PeekableHandle(io.BytesIO(b'0123456789'), max_peek=4)
        assert handle.peek(2) == b'01'
        assert handle.read(3) == b'012'
        assert handle.read() == b'3456789'

    def test_iter_stitches_split_line(self):
        handle = PeekableHandle(io.BytesIO(b'first\nsecond line\nthird\n'), max_peek=9)
        assert list(handle) == [b'first\n', b'second line\n', b'third\n']
