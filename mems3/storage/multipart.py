"""Multipart upload bookkeeping for a single object.

An upload is open from initiation until a successful completion. Parts may
arrive in any order and may be re-sent; the part list given at completion
decides which parts are used and in what order (ascending part number).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from mems3.storage import CompletedPart, PartInfo
from mems3.storage.errors import EtagMismatch, InvalidRequest, PartsNotFound
from mems3.storage.ids import new_id


@dataclass
class Part:
    etag: str
    data: bytes


@dataclass
class MultipartUpload:
    upload_id: str
    parts: dict[int, Part] = field(default_factory=dict)
    # set once the upload has been merged
    etag: str | None = None

    @property
    def is_open(self) -> bool:
        return self.etag is None

    def store_part(self, part_number: int, data: bytes) -> str:
        if part_number < 1:
            raise InvalidRequest(f"Part number must be a positive integer, got {part_number}")
        etag = new_id()
        self.parts[part_number] = Part(etag=etag, data=data)
        return etag

    def list_parts(self) -> list[PartInfo]:
        return [
            PartInfo(part_number=number, etag=part.etag, size=len(part.data))
            for number, part in sorted(self.parts.items())
        ]

    def merge(self, requested: Sequence[CompletedPart]) -> bytes:
        """Validate `requested` against the stored parts and join their payloads.

        Nothing is modified here; a failure leaves the upload exactly as it was.
        """
        if not requested:
            raise InvalidRequest("You must specify at least one part")
        ordered = sorted(requested, key=lambda p: p.part_number)
        chunks: list[bytes] = []
        previous: int | None = None
        for wanted in ordered:
            if wanted.part_number == previous:
                raise InvalidRequest(f"Part number {wanted.part_number} was listed more than once")
            previous = wanted.part_number
            stored = self.parts.get(wanted.part_number)
            if stored is None:
                raise PartsNotFound(f"Part {wanted.part_number} was never uploaded")
            if stored.etag != wanted.etag:
                raise EtagMismatch(f"Part {wanted.part_number} has etag {stored.etag}, not {wanted.etag}")
            chunks.append(stored.data)
        return b"".join(chunks)

    def mark_completed(self, etag: str) -> None:
        self.etag = etag
