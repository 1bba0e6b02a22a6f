"""
Posting record and its two encodings.

A posting says how often, and where, a term occurs in each field of one
document. It travels in two shapes:

  compact  - the index job's text output:  ``docId:f0,f1,f2|p,p,p,...``
             (positions of all fields flattened in field order)
  JSON     - the key-value store value:    ``{"docId": {"frequency": [...],
             "position": [[...], [...], [...]]}}``

Several postings of the same term are joined with ``;`` in the compact form
and collected in a JSON array in the store.
"""

import json
from dataclasses import dataclass
from typing import Any

from mixer.common.config import NUM_FIELDS

POSTING_SEPARATOR = ";"


@dataclass(frozen=True)
class Posting:
    doc_id: int
    frequency: tuple[int, ...]
    position: tuple[tuple[int, ...], ...]

    def __post_init__(self) -> None:
        if len(self.frequency) != len(self.position):
            raise ValueError(f"posting for doc {self.doc_id} has mismatched field counts")
        for freq, positions in zip(self.frequency, self.position):
            if freq != len(positions):
                raise ValueError(
                    f"posting for doc {self.doc_id}: frequency {freq} but {len(positions)} positions"
                )

    @classmethod
    def from_positions(cls, doc_id: int, position: list[list[int]]) -> "Posting":
        """Build a posting from per-field position lists; frequencies follow."""
        return cls(
            doc_id,
            tuple(len(p) for p in position),
            tuple(tuple(p) for p in position),
        )

    # -- compact text -------------------------------------------------------

    def encode(self) -> str:
        freq = ",".join(str(f) for f in self.frequency)
        pos = ",".join(str(p) for positions in self.position for p in positions)
        return f"{self.doc_id}:{freq}|{pos}"

    @classmethod
    def decode(cls, compact: str) -> "Posting":
        """Parse ``docId:f0,f1,f2|p,p,...``; raises ValueError on malformed input."""
        doc_part, sep, rest = compact.partition(":")
        if not sep:
            raise ValueError(f"missing ':' in posting {compact!r}")
        freq_part, sep, pos_part = rest.partition("|")
        if not sep:
            raise ValueError(f"missing '|' in posting {compact!r}")

        frequency = [int(f) for f in freq_part.split(",")]
        flat = [int(p) for p in pos_part.split(",")] if pos_part else []
        if sum(frequency) != len(flat):
            raise ValueError(f"posting {compact!r} has {len(flat)} positions for {sum(frequency)} occurrences")

        position = []
        offset = 0
        for freq in frequency:
            position.append(tuple(flat[offset:offset + freq]))
            offset += freq
        return cls(int(doc_part), tuple(frequency), tuple(position))

    # -- JSON ---------------------------------------------------------------

    def to_json(self) -> dict[str, Any]:
        return {
            str(self.doc_id): {
                "frequency": list(self.frequency),
                "position": [list(p) for p in self.position],
            }
        }

    @classmethod
    def from_json(cls, obj: dict[str, Any]) -> "Posting":
        """Parse one element of a stored postings array."""
        if len(obj) != 1:
            raise ValueError(f"posting object must have exactly one document id, got {list(obj)}")
        doc_id, body = next(iter(obj.items()))
        frequency = tuple(int(f) for f in body["frequency"])
        position = tuple(tuple(int(p) for p in positions) for positions in body["position"])
        if len(frequency) != NUM_FIELDS:
            raise ValueError(f"posting for doc {doc_id} has {len(frequency)} fields")
        return cls(int(doc_id), frequency, position)


def encode_postings(postings: list[Posting]) -> str:
    return POSTING_SEPARATOR.join(p.encode() for p in postings)


def decode_postings(value: str) -> list[Posting]:
    return [Posting.decode(compact) for compact in value.split(POSTING_SEPARATOR) if compact]


def postings_to_json(postings: list[Posting]) -> str:
    return json.dumps([p.to_json() for p in postings], separators=(",", ":"))


def postings_from_json(value: str) -> dict[int, Posting]:
    """Parse a stored postings array into a docId -> Posting map.

    Raises ValueError (json.JSONDecodeError included) or KeyError/TypeError on
    malformed values; callers decide whether that is fatal.
    """
    records = json.loads(value)
    if not isinstance(records, list):
        raise ValueError("stored postings must be a JSON array")
    postings = (Posting.from_json(obj) for obj in records)
    return {p.doc_id: p for p in postings}
