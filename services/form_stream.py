from typing import Dict, List, Optional, Tuple

from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

from core.errors import ValidationError

PART_BEGIN = "part_begin"
PART_DATA = "part_data"
PART_END = "part_end"


class FormPart:
    def __init__(self, name: str, filename: Optional[str]) -> None:
        self.name = name
        self.filename = filename

    @property
    def is_file(self) -> bool:
        return self.filename is not None


class FormStream:
    """
    Incremental multipart/form-data reader.

    python-multipart reports parts through synchronous callbacks, so they
    are queued as events here and drained by the async caller after every
    `feed`, the same way Starlette's own form parser does it.
    """

    def __init__(self, content_type: str) -> None:
        media_type, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if media_type.lower() != b"multipart/form-data" or not boundary:
            raise ValidationError("No file uploaded")

        self._events: List[Tuple[str, object]] = []
        self._headers: Dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        }
        try:
            self._parser = MultipartParser(boundary, callbacks)
        except FormParserError as e:
            raise ValidationError(f"Malformed multipart body: {e}")

    def feed(self, chunk: bytes) -> List[Tuple[str, object]]:
        try:
            self._parser.write(chunk)
        except FormParserError as e:
            raise ValidationError(f"Malformed multipart body: {e}")
        return self._drain()

    def finish(self) -> List[Tuple[str, object]]:
        try:
            self._parser.finalize()
        except FormParserError as e:
            raise ValidationError(f"Malformed multipart body: {e}")
        return self._drain()

    def _drain(self) -> List[Tuple[str, object]]:
        events, self._events = self._events, []
        return events

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        if b"name" not in options:
            raise ValidationError("Form part is missing a name")
        name = options[b"name"].decode("utf-8", errors="replace")
        filename = options.get(b"filename")
        self._events.append(
            (PART_BEGIN, FormPart(name, filename.decode("utf-8", errors="replace") if filename is not None else None))
        )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((PART_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append((PART_END, None))
