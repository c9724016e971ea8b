import io

import pytest

from rscode import read_records


def test_split_on_newline():
    stream = io.BytesIO(b"one\ntwo\nthree\n")
    assert list(read_records(stream)) == [b"one", b"two", b"three"]


def test_split_on_nul_keeps_newlines():
    stream = io.BytesIO(b"a\nb\0c\0")
    assert list(read_records(stream, b"\0")) == [b"a\nb", b"c"]


def test_empty_stream():
    assert list(read_records(io.BytesIO(b""))) == []


def test_empty_records_are_kept():
    assert list(read_records(io.BytesIO(b"\n\nx\n"))) == [b"", b"", b"x"]


def test_records_spanning_chunks():
    data = b"x" * 3000 + b"\n" + b"y" * 10 + b"\n"
    records = list(read_records(io.BytesIO(data), chunk_size=7))
    assert records == [b"x" * 3000, b"y" * 10]


def test_missing_terminator_warns(capsys):
    records = list(read_records(io.BytesIO(b"first\nlast")))
    assert records == [b"first", b"last"]
    err = capsys.readouterr().err
    assert "terminator missing on last input entry" in err


def test_terminated_input_does_not_warn(capsys):
    list(read_records(io.BytesIO(b"first\n")))
    assert capsys.readouterr().err == ""


def test_records_are_yielded_before_more_input_is_read():
    class Stream:
        def __init__(self):
            self.reads = 0

        def read(self, size):
            self.reads += 1
            return b"a\n" if self.reads == 1 else b""

    stream = Stream()
    records = read_records(stream)
    assert next(records) == b"a"
    assert stream.reads == 1


def test_read_error_is_fatal():
    class Broken:
        def read(self, size):
            raise OSError(5, "Input/output error")

    with pytest.raises(SystemExit) as exc:
        list(read_records(Broken()))
    assert exc.value.code == "rscode: read: Input/output error"
