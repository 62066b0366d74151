import codecs
import contextlib
import logging
import os
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_READ_BUFFER_SIZE = 2048
DEFAULT_CHUNK_SIZE_THRESHOLD = 10000
DEFAULT_ENCODING = "utf-8"


class ChunkReaderError(Exception):
    """Base class for every failure reported by a read operation."""

    def __init__(self, message: str, path=None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.path = path
        self.__cause__ = cause


class OpenError(ChunkReaderError):
    pass


class ReadError(ChunkReaderError):
    pass


class CallbackSignaledError(ChunkReaderError):
    pass


class CloseError(ChunkReaderError):
    pass


@dataclass(frozen=True)
class Continue:
    """Keep reading. `carry` becomes the start of the next chunk."""
    carry: str = ""


@dataclass(frozen=True)
class Fail:
    """Stop reading and report `error` through on_complete."""
    error: Union[BaseException, str]


ChunkResult = Union[Continue, Fail]
OnChunk = Callable[[str, bool], Union[ChunkResult, str, None]]
OnComplete = Callable[[Optional[ChunkReaderError]], None]


@dataclass(frozen=True)
class ReaderOptions:
    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE
    chunk_size_threshold: int = DEFAULT_CHUNK_SIZE_THRESHOLD
    encoding: str = DEFAULT_ENCODING

    def __post_init__(self):
        if isinstance(self.read_buffer_size, bool) or not isinstance(self.read_buffer_size, int) \
                or self.read_buffer_size < 1:
            raise ValueError(f"read_buffer_size must be a positive integer, got {self.read_buffer_size!r}")
        if isinstance(self.chunk_size_threshold, bool) or not isinstance(self.chunk_size_threshold, int) \
                or self.chunk_size_threshold < 0:
            raise ValueError(f"chunk_size_threshold must be a non-negative integer, got {self.chunk_size_threshold!r}")
        if not isinstance(self.encoding, str):
            raise ValueError(f"encoding must be a codec name, got {self.encoding!r}")
        # raises LookupError for unknown codecs
        object.__setattr__(self, "encoding", codecs.lookup(self.encoding).name)


@dataclass(frozen=True)
class ReadState:
    """
    Everything one read operation knows between two read steps.
    file_size is the size reported right after open and is never re-checked:
    bytes appended later are ignored, a file that shrinks is a ReadError.
    decoder_state is the incremental decoder's getstate(): the bytes of an unfinished
    character plus the codec's own flag. pending_bytes is the encoded size of pending.
    """
    file_size: int
    decoder_state: tuple
    cursor: int = 0
    pending: str = ""
    pending_bytes: int = 0

    @property
    def at_eof(self) -> bool:
        return self.cursor == self.file_size


def _path_of(handle):
    return getattr(handle, "name", None)


def _byte_length(text: str, encoding: str) -> int:
    if not text:
        return 0
    # drop the byte order mark some codecs (utf-16, utf-8-sig) put in front of every encode
    return len(text.encode(encoding)) - len("".encode(encoding))


def _as_result(value) -> ChunkResult:
    if isinstance(value, (Continue, Fail)):
        return value
    if value is None:
        return Continue()
    if isinstance(value, str):
        return Continue(value)
    return Fail(TypeError(f"on_chunk must return Continue, Fail, str or None, got {type(value).__name__}"))


def _signaled(failure: Fail, path) -> CallbackSignaledError:
    error = failure.error
    cause = error if isinstance(error, BaseException) else None
    return CallbackSignaledError(f"callback signaled failure: {error}", path=path, cause=cause)


@contextlib.contextmanager
def opened(file_path) -> Iterator:
    """Open `file_path` for binary reading and guarantee the handle is closed on every exit."""
    try:
        handle = open(file_path, "rb")
    except OSError as exc:
        raise OpenError(f"cannot open {file_path}: {exc}", path=file_path, cause=exc)
    try:
        yield handle
    except BaseException:
        try:
            handle.close()
        except OSError as exc:
            logger.warning("closing %s after a failed read also failed: %s", file_path, exc)
        raise
    try:
        handle.close()
    except OSError as exc:
        raise CloseError(f"cannot close {file_path}: {exc}", path=file_path, cause=exc)
    logger.debug("closed %s", file_path)


def open_state(handle, options: ReaderOptions) -> ReadState:
    """Freeze the file size and set up decoding for a freshly opened handle."""
    try:
        file_size = os.fstat(handle.fileno()).st_size
    except OSError as exc:
        raise OpenError(f"cannot stat {_path_of(handle)}: {exc}", path=_path_of(handle), cause=exc)
    decoder_state = codecs.getincrementaldecoder(options.encoding)().getstate()
    logger.debug("opened %s (%d bytes)", _path_of(handle), file_size)
    return ReadState(file_size=file_size, decoder_state=decoder_state)


def read_step(handle, state: ReadState, options: ReaderOptions, on_chunk: OnChunk) -> Union[ReadState, Fail]:
    """
    Perform one bounded read at state.cursor and, when the accumulated text is over the
    threshold or the file is exhausted, hand it to on_chunk.
    Returns the next state, or a Fail wrapping the ChunkReaderError that ends the operation.
    """
    path = _path_of(handle)
    wanted = min(options.read_buffer_size, state.file_size - state.cursor)
    try:
        handle.seek(state.cursor)
        data = handle.read(wanted)
    except OSError as exc:
        return Fail(ReadError(f"read of {wanted} bytes at offset {state.cursor} failed: {exc}",
                              path=path, cause=exc))
    if wanted and not data:
        return Fail(ReadError(f"file ended at offset {state.cursor}, expected {state.file_size} bytes",
                              path=path))

    cursor = state.cursor + len(data)
    is_final = cursor == state.file_size
    decoder = codecs.getincrementaldecoder(options.encoding)()
    decoder.setstate(state.decoder_state)
    try:
        # a multi-byte character cut by the read boundary stays in the decoder state
        text = decoder.decode(data, final=is_final)
    except UnicodeDecodeError as exc:
        return Fail(ReadError(f"cannot decode bytes near offset {state.cursor} as {options.encoding}",
                              path=path, cause=exc))
    pending = state.pending + text
    pending_bytes = state.pending_bytes + _byte_length(text, options.encoding)
    decoder_state = decoder.getstate()

    if not is_final and pending_bytes <= options.chunk_size_threshold:
        return replace(state, cursor=cursor, pending=pending, pending_bytes=pending_bytes,
                       decoder_state=decoder_state)

    logger.debug("dispatching %d chars from %s (final=%s)", len(pending), path, is_final)
    try:
        result = _as_result(on_chunk(pending, is_final))
    except Exception as exc:
        result = Fail(exc)
    if isinstance(result, Fail):
        return Fail(_signaled(result, path))
    return replace(state, cursor=cursor, pending=result.carry,
                   pending_bytes=_byte_length(result.carry, options.encoding), decoder_state=decoder_state)


def _read_all(handle, options: ReaderOptions, on_chunk: OnChunk) -> Optional[ChunkReaderError]:
    try:
        state = open_state(handle, options)
    except OpenError as exc:
        return exc
    while True:
        step = read_step(handle, state, options, on_chunk)
        if isinstance(step, Fail):
            return step.error
        state = step
        if state.at_eof:
            return None


def process(file_path, on_chunk: OnChunk, on_complete: OnComplete, options: Optional[ReaderOptions] = None):
    """
    Stream `file_path` through on_chunk(text, is_final) and finish with exactly one
    on_complete(error) call, where error is None on success.
    """
    options = options or ReaderOptions()
    error = None
    try:
        with opened(file_path) as handle:
            error = _read_all(handle, options, on_chunk)
    except ChunkReaderError as exc:
        # open or close failure; an earlier read or callback error takes precedence
        error = error or exc
    if error is not None:
        logger.warning("reading %s failed: %s", file_path, error)
    on_complete(error)


class ChunkReader:
    def __init__(self, filepath, options: Optional[ReaderOptions] = None):
        """
        Reads a file in bounded steps of options.read_buffer_size bytes and hands the decoded
        text out in chunks of roughly options.chunk_size_threshold bytes, so the whole file
        never has to sit in memory.
        """
        self.filepath = filepath
        self.options = options or ReaderOptions()

    def process(self, on_chunk: OnChunk, on_complete: OnComplete):
        process(self.filepath, on_chunk, on_complete, self.options)

    def steps(self, on_chunk: OnChunk) -> Iterator[ReadState]:
        """Drive on_chunk one read at a time, yielding the state after each read. Failures are raised."""
        with opened(self.filepath) as handle:
            state = open_state(handle, self.options)
            while True:
                step = read_step(handle, state, self.options, on_chunk)
                if isinstance(step, Fail):
                    raise step.error
                state = step
                yield state
                if state.at_eof:
                    break

    def __iter__(self) -> Iterator[tuple[str, bool]]:
        ready = []

        def collect(text, is_final):
            ready.append((text, is_final))

        with contextlib.closing(self.steps(collect)) as steps:
            for _ in steps:
                yield from ready
                ready.clear()
