"""Utility helpers to build and scan EMV-style TLV payloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Union

from .errors import err_field_length, err_malformed_header, err_truncated, err_unknown_subtag
from .tags import SubTag, Tag

logger = logging.getLogger("khqr.tlv")

Identity = Union[Tag, SubTag]

HEADER_LENGTH = 4
MAX_VALUE_LENGTH = 99


@dataclass(frozen=True)
class TLVItem:
    tag: Identity
    value: str
    parent: Tag | None = None

    @property
    def code(self) -> int:
        if isinstance(self.tag, Tag):
            return self.tag.code
        if self.parent is None:
            raise ValueError(f"{self.tag.name} needs a parent tag to be encoded")
        return self.tag.code_in(self.parent)

    def validate(self) -> None:
        self.tag.validate(self.value)

    def serialize(self) -> str:
        self.validate()
        if len(self.value) > MAX_VALUE_LENGTH:
            raise err_field_length(f"{self.tag.name} exceeds max length {MAX_VALUE_LENGTH}")
        return f"{self.code:02d}{len(self.value):02d}{self.value}"


def build_tlv(items: Iterable[TLVItem]) -> str:
    """Serialize iterable of TLV items into EMV string."""

    return "".join(item.serialize() for item in items)


def _is_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def iter_fragments(payload: str) -> Iterator[tuple[int, str]]:
    """Split a TLV run into raw ``(code, value)`` pairs."""

    idx = 0
    total = len(payload)
    while idx < total:
        if idx + HEADER_LENGTH > total:
            raise err_truncated("Dangling TLV data detected")
        raw_code = payload[idx : idx + 2]
        raw_length = payload[idx + 2 : idx + 4]
        if not _is_digits(raw_code):
            raise err_malformed_header(f"Invalid tag code '{raw_code}'")
        if not _is_digits(raw_length):
            raise err_malformed_header(f"Invalid length '{raw_length}' for tag {raw_code}")
        value_start = idx + HEADER_LENGTH
        value_end = value_start + int(raw_length)
        if value_end > total:
            raise err_truncated(f"Declared length of tag {raw_code} exceeds remaining slice")
        yield int(raw_code), payload[value_start:value_end]
        idx = value_end


def scan_tlv(payload: str, parent: Tag | None = None) -> Iterator[TLVItem]:
    """Scan a TLV run and resolve each fragment against the taxonomy.

    With no ``parent`` the run is read as top-level tags and unknown codes are
    skipped. Inside a container an unknown sub-tag code is an error. Every
    yielded value has already passed its field rule.
    """

    for code, value in iter_fragments(payload):
        if parent is None:
            tag = Tag.from_code(code)
            if tag is None:
                logger.debug("skipping unknown tag", extra={"tag": f"{code:02d}"})
                continue
            item = TLVItem(tag=tag, value=value)
        else:
            sub_tag = SubTag.from_code(parent, code)
            if sub_tag is None:
                raise err_unknown_subtag(f"Unknown {parent.name} sub-tag {code:02d}")
            item = TLVItem(tag=sub_tag, value=value, parent=parent)
        item.validate()
        yield item
