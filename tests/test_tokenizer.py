import pytest

from chunk_reader import CallbackSignaledError, Continue, Fail, OpenError, ReaderOptions, process
from tokenizer import TokenIterator, split_tokens, tokenize


def collect_tokens(path, delimiter, options=None):
    tokens = []
    completions = []

    def on_token(token):
        assert not completions, "token delivered after completion"
        tokens.append(token)

    tokenize(path, delimiter, on_token, completions.append, options)
    return tokens, completions


def test_comma_separated_small_reads(write_file) -> None:
    path = write_file("a,b,c")

    tokens, completions = collect_tokens(path, ",", ReaderOptions(read_buffer_size=2, chunk_size_threshold=1))

    assert tokens == ["a", "b", "c"]
    assert completions == [None]


def test_small_file_is_tokenized_in_one_dispatch(write_file) -> None:
    path = write_file("alpha beta gamma")

    tokens, completions = collect_tokens(path, " ")

    assert tokens == ["alpha", "beta", "gamma"]
    assert completions == [None]


def test_empty_file_yields_one_empty_token(write_file) -> None:
    path = write_file("")

    tokens, completions = collect_tokens(path, "\n")

    assert tokens == [""]
    assert completions == [None]


def test_file_without_delimiter_is_one_token_emitted_at_eof(write_file) -> None:
    content = "no separators in here at all"
    path = write_file(content)
    tokens = []
    finals = []
    split = split_tokens("|", tokens.append)

    def on_chunk(text, is_final):
        finals.append(is_final)
        return split(text, is_final)

    process(path, on_chunk, lambda error: None, ReaderOptions(read_buffer_size=4, chunk_size_threshold=0))

    assert tokens == [content]
    assert finals[-1] is True
    assert len(finals) > 1


def test_consecutive_delimiters_produce_empty_tokens(write_file) -> None:
    path = write_file(",a,,b,")

    tokens, _ = collect_tokens(path, ",", ReaderOptions(read_buffer_size=1, chunk_size_threshold=0))

    assert tokens == ["", "a", "", "b", ""]


def test_delimiter_exactly_on_read_boundary(write_file) -> None:
    path = write_file("abc;def;ghi")

    # the first read ends right after ";", the second right before it
    tokens, _ = collect_tokens(path, ";", ReaderOptions(read_buffer_size=4, chunk_size_threshold=0))

    assert tokens == ["abc", "def", "ghi"]


def test_multi_character_delimiter_straddling_reads(write_file) -> None:
    path = write_file("one<sep>two<sep>three")

    tokens, _ = collect_tokens(path, "<sep>", ReaderOptions(read_buffer_size=2, chunk_size_threshold=0))

    assert tokens == ["one", "two", "three"]


@pytest.mark.parametrize("delimiter", ["\n", ",", "aa", "<|end|>", "é"])
@pytest.mark.parametrize("read_buffer_size", [1, 2, 3, 5, 8, 13, 1024])
@pytest.mark.parametrize("threshold", [0, 1, 4, 10000])
def test_tokens_do_not_depend_on_chunk_boundaries(write_file, delimiter, read_buffer_size, threshold) -> None:
    content = delimiter.join(["", "first", "aaa", "", "sécond ☃", "x" * 40, "a", ""]) + "tail"
    path = write_file(content)

    tokens, completions = collect_tokens(path, delimiter, ReaderOptions(read_buffer_size, threshold))

    assert tokens == content.split(delimiter)
    assert completions == [None]


def test_on_token_fail_aborts_reading(write_file) -> None:
    path = write_file("a,b,STOP,c,d")
    tokens = []
    completions = []

    def on_token(token):
        if token == "STOP":
            return Fail(ValueError("stop token"))
        tokens.append(token)
        return None

    tokenize(path, ",", on_token, completions.append, ReaderOptions(read_buffer_size=2, chunk_size_threshold=0))

    assert tokens == ["a", "b"]
    [error] = completions
    assert isinstance(error, CallbackSignaledError)
    assert isinstance(error.__cause__, ValueError)


def test_open_error_is_forwarded(tmp_path) -> None:
    tokens, completions = collect_tokens(tmp_path / "missing.txt", ",")

    assert tokens == []
    [error] = completions
    assert isinstance(error, OpenError)


@pytest.mark.parametrize("delimiter", ["", None, 3])
def test_delimiter_must_be_a_non_empty_string(write_file, delimiter) -> None:
    path = write_file("abc")

    with pytest.raises(ValueError):
        tokenize(path, delimiter, lambda token: None, lambda error: None)
    with pytest.raises(ValueError):
        TokenIterator(path, delimiter)


def test_split_tokens_returns_tail_as_carry() -> None:
    seen = []
    on_chunk = split_tokens(",", seen.append)

    assert on_chunk("a,b,par", False) == Continue("par")
    assert seen == ["a", "b"]
    on_chunk("tial", True)
    assert seen == ["a", "b", "tial"]


def test_token_iterator_yields_lazily(write_file) -> None:
    path = write_file("l1\nl2\nl3\n")

    tokens = TokenIterator(path, "\n", ReaderOptions(read_buffer_size=3, chunk_size_threshold=0))

    assert list(tokens) == ["l1", "l2", "l3", ""]


def test_token_iterator_raises_reader_errors(tmp_path) -> None:
    with pytest.raises(OpenError):
        list(TokenIterator(tmp_path / "missing.txt", "\n"))
