from __future__ import annotations
from typing import Iterable, List, Optional

from .errors import AttributeIndexOutOfRangeError
from .mesh import MeshBuffer


def parse_number_sequence(text: str, max_value: Optional[int] = None) -> List[int]:
    """Parse ``N1,N2-N3`` into a list of integers.

    Ranges are inclusive. ``-N`` means ``0..N`` and ``N-`` means
    ``N..max_value-1`` (needs ``max_value``). Whitespace is ignored, order
    and duplicates are kept.
    """
    out: List[int] = []
    for token in text.replace(" ", "").split(","):
        if not token:
            continue
        if "-" in token:
            lo_text, _, hi_text = token.partition("-")
            if not (lo_text or hi_text) or any(t and not t.isdigit() for t in (lo_text, hi_text)):
                raise ValueError(f"Invalid number range '{token}'")
            lo = int(lo_text) if lo_text else 0
            if hi_text:
                hi = int(hi_text)
            elif max_value is not None:
                hi = max_value - 1
            else:
                raise ValueError(f"Open-ended range '{token}' needs an upper bound")
            out.extend(range(lo, hi + 1))
        elif token.isdigit():
            out.append(int(token))
        else:
            raise ValueError(f"Invalid number '{token}'")
    return out


def filter_attributes(mesh: MeshBuffer, attribute_ids: Iterable[int]) -> MeshBuffer:
    """Keep only the attributes at the given ordinal indices, in that order.

    The vertex buffer is shared with the input, only the descriptor list
    changes. Indices and vertex count are untouched.
    """
    ids = list(attribute_ids)
    for i in ids:
        if i < 0 or i >= mesh.attribute_count:
            raise AttributeIndexOutOfRangeError(i, mesh.attribute_count)
    attributes = [mesh.attributes[i] for i in ids]
    return MeshBuffer(mesh.primitive, mesh.vertex_data, attributes, mesh.vertex_count, mesh.indices)
