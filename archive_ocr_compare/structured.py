"""Reader for the cloud service's structured XML export.

Structure (namespaces omitted)::

    <document>
      <page>
        <block blockType="Text">
          <region><rect .../></region>
          <text>
            <par>
              <line>
                <formatting>
                  <charParams charConfidence="57" suspicious="1">M
                    <charRecVariants>
                      <charRecVariant charConfidence="57">M</charRecVariant>
                      <charRecVariant charConfidence="41">H</charRecVariant>
                    </charRecVariants>
                  </charParams>
    ...

Only the per-character view is extracted; the XML is otherwise kept for
manual inspection.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterator

from .errors import ParseError


@dataclass(frozen=True)
class CharVariants:
    char: str
    confidence: int | None  # 0-100, None when the service omits it
    suspicious: bool
    variants: tuple[tuple[str, int | None], ...] = ()


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _int_or_none(value: str | None) -> int | None:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def parse_characters(xml: bytes | str) -> Iterator[CharVariants]:
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise ParseError(f"malformed structured OCR document: {e}") from e

    for el in root.iter():
        if _local(el.tag) != "charParams":
            continue
        variants = tuple(
            ((v.text or "").strip(), _int_or_none(v.get("charConfidence")))
            for v in el.iter()
            if _local(v.tag) == "charRecVariant"
        )
        if len(el) == 0:
            char = el.text or ""  # may be a plain space
        else:
            # text precedes the variant list; strip the indentation around it
            char = (el.text or "").strip() or (variants[0][0] if variants else "")
        yield CharVariants(
            char=char,
            confidence=_int_or_none(el.get("charConfidence")),
            suspicious=el.get("suspicious") in ("1", "true"),
            variants=variants,
        )


def low_confidence(chars: Iterator[CharVariants] | list[CharVariants], threshold: int = 60) -> list[CharVariants]:
    return [c for c in chars if c.suspicious or (c.confidence is not None and c.confidence < threshold)]
