from pathlib import Path

import pytest

from catchall.errors import FieldTooLargeError, FileTooLargeError
from catchall.ingest.multipart import MAX_FIELD_BYTES, disk_name, materialize, safe_basename

BOUNDARY = "catchallboundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _field(name: str, value: str) -> bytes:
    head = f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'
    return head.encode() + value.encode() + b"\r\n"


def _file(name: str, data: bytes, filename: str, content_type: str | None = None) -> bytes:
    head = f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
    if content_type:
        head += f"Content-Type: {content_type}\r\n"
    return head.encode() + b"\r\n" + data + b"\r\n"


def _body(*parts: bytes) -> bytes:
    return b"".join(parts) + f"--{BOUNDARY}--\r\n".encode()


async def _chunks(data: bytes, size: int = 7, consumed: list | None = None):
    # small chunks split headers and boundaries across writes
    for i in range(0, len(data), size):
        if consumed is not None:
            consumed.append(i)
        yield data[i : i + size]


async def _run(body: bytes, request_id: str, root, **kwargs):
    return await materialize(_chunks(body), CONTENT_TYPE, request_id, root, **kwargs)


async def test_files_and_fields_are_split(tmp_path):
    body = _body(_file("f", b"abcdef", "data.bin", "application/octet-stream"), _field("note", "hi"))
    result = await _run(body, "REQ1", tmp_path)

    assert result.fields == {"note": "hi"}
    assert len(result.files) == 1
    fd = result.files[0]
    assert fd.request_id == "REQ1"
    assert fd.field_name == "f"
    assert fd.original_name == "data.bin"
    assert fd.mime_type == "application/octet-stream"
    assert fd.size == 6
    path = Path(fd.disk_path)
    assert path.parent == tmp_path / "REQ1"
    assert path.read_bytes() == b"abcdef"


async def test_files_are_written_in_place(tmp_path):
    body = _body(_file("f", b"abc", "a.txt"))
    await _run(body, "REQ0", tmp_path)
    # only the final file exists under the request directory
    names = [p.name for p in (tmp_path / "REQ0").iterdir()]
    assert len(names) == 1
    assert names[0].endswith("_a.txt")


async def test_binary_file_content_is_preserved(tmp_path):
    payload = bytes(range(256)) * 40 + b"\r\n--not-a-boundary\r\n"
    result = await _run(_body(_file("f", payload, "blob.bin")), "REQB", tmp_path)
    assert Path(result.files[0].disk_path).read_bytes() == payload
    assert result.files[0].size == len(payload)


async def test_duplicate_filenames_get_distinct_paths(tmp_path):
    body = _body(_file("a", b"one", "same.txt"), _file("b", b"two", "same.txt"))
    result = await _run(body, "REQ2", tmp_path)

    ids = {f.id for f in result.files}
    paths = {f.disk_path for f in result.files}
    assert len(ids) == 2
    assert len(paths) == 2
    assert [Path(f.disk_path).read_bytes() for f in result.files] == [b"one", b"two"]
    assert [f.original_name for f in result.files] == ["same.txt", "same.txt"]


async def test_descriptors_follow_arrival_order(tmp_path):
    body = _body(*(_file(f"f{i}", str(i).encode(), f"{i}.txt") for i in range(5)))
    result = await _run(body, "REQ3", tmp_path)
    assert [f.field_name for f in result.files] == ["f0", "f1", "f2", "f3", "f4"]
    assert [f.id for f in result.files] == sorted(f.id for f in result.files)


async def test_repeated_field_last_value_wins(tmp_path):
    body = _body(_field("k", "first"), _field("other", "x"), _field("k", "second"))
    result = await _run(body, "REQ4", tmp_path)
    assert result.fields == {"k": "second", "other": "x"}
    assert result.files == []


async def test_request_directory_created_without_parts(tmp_path):
    await _run(b"", "REQ5", tmp_path / "nested" / "root")
    assert (tmp_path / "nested" / "root" / "REQ5").is_dir()


async def test_missing_filename_is_synthesized(tmp_path):
    result = await _run(_body(_file("f", b"x", "")), "REQ6", tmp_path)
    fd = result.files[0]
    assert fd.original_name == f"file-{fd.id}"
    assert Path(fd.disk_path).name == f"file-{fd.id}"
    assert fd.mime_type is None


async def test_declared_path_cannot_escape_request_dir(tmp_path):
    result = await _run(_body(_file("f", b"x", "../../etc/passwd")), "REQ7", tmp_path)
    fd = result.files[0]
    assert Path(fd.disk_path).parent == tmp_path / "REQ7"
    assert fd.original_name == "../../etc/passwd"


async def test_oversized_file_aborts(tmp_path):
    body = _body(_file("small", b"ok", "a.txt"), _file("big", b"x" * 100, "b.txt"))
    with pytest.raises(FileTooLargeError) as excinfo:
        await _run(body, "REQ8", tmp_path, max_file_bytes=10)
    assert excinfo.value.field_name == "big"
    # earlier files stay on disk
    assert any(p.name.endswith("_a.txt") for p in (tmp_path / "REQ8").iterdir())


async def test_oversized_file_stops_reading_the_stream(tmp_path):
    body = _body(_file("big", b"x" * 10_000, "b.bin"), _field("tail", "y" * 10_000))
    consumed: list[int] = []
    stream = _chunks(body, size=64, consumed=consumed)
    with pytest.raises(FileTooLargeError):
        await materialize(stream, CONTENT_TYPE, "REQ9", tmp_path, max_file_bytes=128)
    total_chunks = len(range(0, len(body), 64))
    assert len(consumed) < 10
    assert len(consumed) < total_chunks
    # the partial file never grows past the ceiling
    (partial,) = list((tmp_path / "REQ9").iterdir())
    assert partial.stat().st_size <= 128


async def test_oversized_field_aborts(tmp_path):
    body = _body(_field("huge", "z" * (MAX_FIELD_BYTES + 1)))
    with pytest.raises(FieldTooLargeError) as excinfo:
        await materialize(_chunks(body, size=65536), CONTENT_TYPE, "REQ10", tmp_path)
    assert excinfo.value.field_name == "huge"


async def test_missing_boundary_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        await materialize(_chunks(b""), "multipart/form-data", "REQ11", tmp_path)


def test_safe_basename():
    assert safe_basename("report.pdf") == "report.pdf"
    assert safe_basename("dir/report.pdf") == "report.pdf"
    assert safe_basename("C:\\Users\\me\\report.pdf") == "report.pdf"
    assert safe_basename("..") == ""
    assert safe_basename(None) == ""


def test_disk_name():
    assert disk_name("01ABC", "a.txt") == "01ABC_a.txt"
    assert disk_name("01ABC", None) == "file-01ABC"
