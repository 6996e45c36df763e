# src/htspileup/types.py
from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, Tuple, runtime_checkable


@runtime_checkable
class PileupReadLike(Protocol):
    """
    Minimal interface we need from one per-read entry of a pileup column.

    pysam.PileupRead satisfies this directly. The wrapper only reads these
    attributes; anything else on the entry is ignored.
    """

    # Raw read record, handed to the record factory
    @property
    def alignment(self) -> Any:
        ...

    # Engine-reported query offset; for deletions / ref skips this is the
    # next query base rather than None
    @property
    def query_position_or_next(self) -> int:
        ...

    # Signed indel length: < 0 deletion, > 0 insertion, 0 none
    @property
    def indel(self) -> int:
        ...

    @property
    def is_del(self) -> int:
        ...

    @property
    def is_head(self) -> int:
        ...

    @property
    def is_tail(self) -> int:
        ...

    @property
    def is_refskip(self) -> int:
        ...


# (entries or None, reference id, position, depth)
RawColumn = Tuple[Optional[Sequence[PileupReadLike]], int, int, int]


@runtime_checkable
class PileupEngine(Protocol):
    """
    The handle-based protocol a pileup engine exposes.

    `next_column` returns None entries at end-of-data; None entries together
    with a depth of exactly -1 is the engine's only error signal. The
    returned entries stay owned by the engine and may be reused on the next
    call.
    """

    def next_column(self) -> RawColumn:
        ...

    def set_maxcnt(self, maxcnt: int) -> None:
        ...

    def reset(self) -> None:
        ...

    def destroy(self) -> None:
        ...
