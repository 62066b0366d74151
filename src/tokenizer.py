import contextlib
from typing import Callable, Optional, Union

from chunk_reader import ChunkReader, Continue, Fail, OnComplete, ReaderOptions, process

OnToken = Callable[[str], Union[Fail, None]]


def split_tokens(delimiter: str, on_token: OnToken):
    """
    Build an on_chunk callback that emits every token closed by `delimiter` and carries the
    unfinished tail into the next chunk. On the final chunk the tail is a token too, bounded
    by the end of the file.
    """
    if not isinstance(delimiter, str) or not delimiter:
        raise ValueError(f"delimiter must be a non-empty string, got {delimiter!r}")

    def on_chunk(text: str, is_final: bool):
        parts = text.split(delimiter)
        complete = parts if is_final else parts[:-1]
        for token in complete:
            result = on_token(token)
            if isinstance(result, Fail):
                return result
        return Continue(parts[-1])

    return on_chunk


def tokenize(file_path, delimiter: str, on_token: OnToken, on_complete: OnComplete,
             options: Optional[ReaderOptions] = None):
    process(file_path, split_tokens(delimiter, on_token), on_complete, options)


class TokenIterator:
    def __init__(self, filepath, delimiter: str, options: Optional[ReaderOptions] = None):
        """
        Iterates over the tokens of a text file separated by `delimiter`.
        Only one chunk (plus the carried partial token) is held in memory at a time.
        """
        if not isinstance(delimiter, str) or not delimiter:
            raise ValueError(f"delimiter must be a non-empty string, got {delimiter!r}")
        self.filepath = filepath
        self.delimiter = delimiter
        self.options = options or ReaderOptions()

    def __iter__(self):
        ready = []
        reader = ChunkReader(self.filepath, self.options)
        with contextlib.closing(reader.steps(split_tokens(self.delimiter, ready.append))) as steps:
            for _ in steps:
                yield from ready
                ready.clear()
