"""Form body parsing — URL-encoded and multipart.

URL-encoded bodies use stdlib ``urllib.parse``. Multipart bodies are
parsed with ``python-multipart``.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs

from python_multipart.multipart import MultipartParser, parse_options_header

from perch.http.query import flatten_params


@dataclass(frozen=True, slots=True)
class UploadFile:
    """A file from a multipart form submission, held in memory."""

    key: str
    filename: str
    content_type: str
    size: int
    _content: bytes

    async def read(self) -> bytes:
        return self._content

    def move_to(self, destination: str | Path) -> None:
        """Write the file content to *destination*."""
        Path(destination).write_bytes(self._content)

    def get_extension(self) -> str:
        return Path(self.filename).suffix.lstrip(".")

    def __repr__(self) -> str:
        return f"UploadFile({self.key!r}, {self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(Mapping[str, Any]):
    """Parsed form fields plus uploaded files.

    Usage::

        form = await request.form()
        username = form["username"]
        avatars = form.files  # list[UploadFile]
    """

    __slots__ = ("_data", "_files", "_flat")

    def __init__(
        self,
        data: dict[str, list[str]],
        files: list[UploadFile] | None = None,
    ) -> None:
        self._data = data
        self._files = files or []
        self._flat = flatten_params(data)

    @property
    def files(self) -> list[UploadFile]:
        return list(self._files)

    def __getitem__(self, key: str) -> Any:
        return self._flat[key]

    def __contains__(self, key: object) -> bool:
        return key in self._flat

    def __iter__(self) -> Iterator[str]:
        return iter(self._flat)

    def __len__(self) -> int:
        return len(self._flat)

    def __repr__(self) -> str:
        return f"FormData({self._flat!r}, files={len(self._files)})"

    def get_list(self, key: str) -> list[str]:
        """Every raw value sent under *key* (checkboxes, multi-selects)."""
        return list(self._data.get(key, []))


def is_form_content_type(content_type: str | None) -> bool:
    ct = (content_type or "").lower().split(";")[0].strip()
    return ct in ("application/x-www-form-urlencoded", "multipart/form-data")


async def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body into ``FormData``.

    Raises:
        ValueError: If the content type is not a form encoding or a
            multipart body has no boundary.
    """
    ct_lower = content_type.lower().split(";")[0].strip()

    if ct_lower == "application/x-www-form-urlencoded":
        return FormData(parse_qs(body.decode("utf-8"), keep_blank_values=True))

    if ct_lower == "multipart/form-data":
        return _parse_multipart(body, content_type)

    msg = f"Unsupported form content type: {content_type!r}"
    raise ValueError(msg)


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    _, options = parse_options_header(content_type.encode("latin-1"))
    boundary = options.get(b"boundary")
    if boundary is None:
        msg = "Multipart form data missing boundary parameter"
        raise ValueError(msg)

    data: dict[str, list[str]] = {}
    files: list[UploadFile] = []

    current_headers: dict[str, str] = {}
    current_data = bytearray()
    current_field_name: str | None = None
    current_filename: str | None = None
    header_field = bytearray()
    header_value = bytearray()

    def on_part_begin() -> None:
        nonlocal current_headers, current_data, current_field_name, current_filename
        current_headers = {}
        current_data = bytearray()
        current_field_name = None
        current_filename = None

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        current_data.extend(chunk[start:end])

    def on_part_end() -> None:
        if current_field_name is None:
            return
        if current_filename is not None:
            content = bytes(current_data)
            files.append(
                UploadFile(
                    key=current_field_name,
                    filename=current_filename,
                    content_type=current_headers.get("content-type", "application/octet-stream"),
                    size=len(content),
                    _content=content,
                )
            )
        else:
            value = current_data.decode("utf-8", errors="replace")
            data.setdefault(current_field_name, []).append(value)

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        header_field.extend(chunk[start:end])

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        header_value.extend(chunk[start:end])

    def on_header_end() -> None:
        nonlocal current_field_name, current_filename
        name = header_field.decode("latin-1").lower()
        value = header_value.decode("latin-1")
        header_field.clear()
        header_value.clear()
        current_headers[name] = value

        if name == "content-disposition":
            _, params = parse_options_header(value.encode("latin-1"))
            field_name = params.get(b"name")
            if field_name is not None:
                current_field_name = field_name.decode("utf-8")
            filename = params.get(b"filename")
            if filename is not None:
                current_filename = filename.decode("utf-8")

    callbacks: dict[str, Any] = {
        "on_part_begin": on_part_begin,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
        "on_header_end": on_header_end,
    }

    parser = MultipartParser(boundary, callbacks)
    parser.write(body)
    parser.finalize()

    return FormData(data, files)
