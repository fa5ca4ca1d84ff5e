import pytest

from conftest import BOUNDARY, MULTIPART_CONTENT_TYPE, file_part_head, form_tail
from core.errors import ValidationError
from services.form_stream import PART_BEGIN, PART_DATA, PART_END, FormStream


def collect(events):
    """Fold events into [(name, filename, data)] per part."""
    parts = []
    for kind, payload in events:
        if kind == PART_BEGIN:
            parts.append([payload.name, payload.filename, b""])
        elif kind == PART_DATA:
            parts[-1][2] += payload
    return [tuple(p) for p in parts]


def text_part(name, value):
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
        f"{value}\r\n"
    ).encode()


def test_fields_and_file_in_order():
    body = text_part("title", "Holiday") + file_part_head("trip.mp4") + b"\x00\x01\x02" + form_tail()
    form = FormStream(MULTIPART_CONTENT_TYPE)

    events = []
    # one byte at a time, so every boundary lands across feeds
    for i in range(len(body)):
        events += form.feed(body[i:i + 1])
    events += form.finish()

    assert collect(events) == [("title", None, b"Holiday"), ("video", "trip.mp4", b"\x00\x01\x02")]
    assert [kind for kind, _ in events].count(PART_END) == 2


@pytest.mark.parametrize(
    "content_type",
    ["application/x-www-form-urlencoded", "multipart/form-data", "text/plain", ""],
)
def test_non_multipart_bodies_rejected(content_type):
    with pytest.raises(ValidationError) as exc_info:
        FormStream(content_type)
    assert exc_info.value.message == "No file uploaded"


def test_part_without_name_rejected():
    body = f"--{BOUNDARY}\r\nContent-Disposition: form-data\r\n\r\nvalue\r\n".encode() + form_tail()
    form = FormStream(MULTIPART_CONTENT_TYPE)
    with pytest.raises(ValidationError):
        form.feed(body)


def test_garbage_after_boundary_rejected():
    form = FormStream(MULTIPART_CONTENT_TYPE)
    with pytest.raises(ValidationError):
        form.feed(f"--{BOUNDARY}XX\r\n".encode())
