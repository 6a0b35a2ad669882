from dataclasses import dataclass
from typing import BinaryIO, Mapping

OCTET_STREAM = "application/octet-stream"


@dataclass
class MultipartFile:
    field_name: str
    file_name: str
    reader: BinaryIO


def is_seekable(reader: object) -> bool:
    seekable = getattr(reader, "seekable", None)
    if callable(seekable):
        try:
            return bool(seekable())
        except (OSError, ValueError):
            return False
    return hasattr(reader, "seek")


def encode_parts(
    files: list[MultipartFile], fields: Mapping[str, str] | None = None
) -> tuple[dict[str, str], list[tuple[str, tuple[str, BinaryIO, str]]], bool]:
    """Split a multipart payload into httpx `data`/`files` arguments.

    The third element reports whether every reader can be rewound, which
    decides whether the request may be replayed.
    """
    data = {name: value for name, value in (fields or {}).items()}
    parts = [(f.field_name, (f.file_name, f.reader, OCTET_STREAM)) for f in files]
    rewindable = all(is_seekable(f.reader) for f in files)
    return data, parts, rewindable
