"""
Growable byte buffer holding the canonical lines of the current query batch.
"""
import numpy as np


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class StaleViewError(RuntimeError):
    """Raised when a BufferView is read after the buffer it borrows from was modified."""
    pass


# Classes --------------------------------------------------------------------------------------------------------------
class OutputBuffer:
    """
    Append-only byte buffer reused across batches.

    Clearing resets the logical length but keeps the allocated capacity. When a write does not fit, the backing array
    grows to the larger of twice its capacity and the size required by the write, keeping all bytes written so far.

    Readers borrow the contents through `view()`. A view is valid only until the next `clear()` or `write()`; after
    that any access raises StaleViewError, since the bytes it pointed at are overwritten in place.

    Examples:
        >>> buf = OutputBuffer()
        >>> buf.write_line(b'read1')
        >>> bytes(buf.view())
        b'read1\\n'
    """
    __slots__ = ('_data', '_length', '_generation')
    _DEFAULT_CAPACITY = 10000

    def __init__(self, capacity: int = _DEFAULT_CAPACITY):
        self._data = np.empty(max(1, capacity), dtype=np.uint8)
        self._length = 0
        self._generation = 0

    @property
    def data(self) -> np.ndarray:
        """The backing array. Only the first len(self) bytes are meaningful."""
        return self._data
    @property
    def capacity(self) -> int: return len(self._data)
    @property
    def generation(self) -> int: return self._generation
    def __len__(self) -> int: return self._length

    def clear(self):
        self._length = 0
        self._generation += 1

    def _reserve(self, n: int):
        required = self._length + n
        if required > len(self._data):
            grown = np.empty(max(2 * len(self._data), required), dtype=np.uint8)
            grown[:self._length] = self._data[:self._length]
            self._data = grown

    def write(self, chunk: bytes):
        """Appends bytes, growing the backing array if needed."""
        n = len(chunk)
        self._generation += 1
        if n == 0: return
        self._reserve(n)
        self._data[self._length:self._length + n] = np.frombuffer(chunk, dtype=np.uint8)
        self._length += n

    def write_line(self, line: bytes):
        """Appends a line followed by a newline."""
        self.write(line)
        self.write(b'\n')

    def view(self) -> 'BufferView': return BufferView(self)
    def tobytes(self) -> bytes: return self._data[:self._length].tobytes()


class BufferView:
    """
    Borrowed, read-only view of an OutputBuffer's current contents.

    Invalidated by any later mutation of the buffer.
    """
    __slots__ = ('_buffer', '_generation')

    def __init__(self, buffer: OutputBuffer):
        self._buffer = buffer
        self._generation = buffer.generation

    @property
    def valid(self) -> bool: return self._generation == self._buffer.generation

    def _check(self):
        if not self.valid: raise StaleViewError('Output buffer was modified after this view was taken')

    def __len__(self) -> int:
        self._check()
        return len(self._buffer)

    def memoryview(self) -> memoryview:
        """Zero-copy, read-only memoryview of the logical contents."""
        self._check()
        return memoryview(self._buffer.data[:len(self._buffer)]).toreadonly()

    def tobytes(self) -> bytes:
        self._check()
        return self._buffer.tobytes()

    __bytes__ = tobytes

    def lines(self) -> list[bytes]:
        """Splits the contents into lines, without terminators."""
        return self.tobytes().splitlines()
