# src/htspileup/pileup.py
from __future__ import annotations

import enum
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Sequence

from .errors import PileupError, StaleColumnError
from .types import PileupEngine, PileupReadLike

LOG = logging.getLogger("htspileup.pileup")

RecordFactory = Callable[[Any], Any]

# Engine depth value that turns a missing column into an error
ERROR_DEPTH = -1


def _same_record(raw: Any) -> Any:
    return raw


# ---------------------------------------------------------------------------
# Indel decoding
# ---------------------------------------------------------------------------

class IndelKind(enum.Enum):
    NONE = "none"
    INSERTION = "ins"
    DELETION = "del"


@dataclass(frozen=True)
class Indel:
    """
    Insertion, deletion (with length) or no indel at an alignment position.
    """

    kind: IndelKind
    length: int = 0

    @classmethod
    def from_raw(cls, value: int) -> "Indel":
        """Decode the engine's signed indel length."""
        if value < 0:
            return cls(IndelKind.DELETION, -value)
        if value > 0:
            return cls(IndelKind.INSERTION, value)
        return NO_INDEL

    @classmethod
    def insertion(cls, length: int) -> "Indel":
        return cls(IndelKind.INSERTION, length)

    @classmethod
    def deletion(cls, length: int) -> "Indel":
        return cls(IndelKind.DELETION, length)

    @property
    def is_insertion(self) -> bool:
        return self.kind is IndelKind.INSERTION

    @property
    def is_deletion(self) -> bool:
        return self.kind is IndelKind.DELETION

    def __bool__(self) -> bool:
        return self.kind is not IndelKind.NONE

    def __str__(self) -> str:
        # samtools mpileup style: +3 / -2, empty for none
        if self.kind is IndelKind.INSERTION:
            return f"+{self.length}"
        if self.kind is IndelKind.DELETION:
            return f"-{self.length}"
        return ""


NO_INDEL = Indel(IndelKind.NONE, 0)


# ---------------------------------------------------------------------------
# Borrowed views
# ---------------------------------------------------------------------------

class _Borrow:
    """Token shared by one column and its alignments; revoked on advance."""

    __slots__ = ("alive",)

    def __init__(self) -> None:
        self.alive = True


class Alignment:
    """An aligned read in a pileup column."""

    __slots__ = ("_entry", "_borrow", "_position", "_record_factory")

    def __init__(
        self,
        entry: PileupReadLike,
        borrow: _Borrow,
        position: int,
        record_factory: RecordFactory,
    ) -> None:
        self._entry = entry
        self._borrow = borrow
        self._position = position
        self._record_factory = record_factory

    def _inner(self) -> PileupReadLike:
        if not self._borrow.alive:
            raise StaleColumnError(self._position)
        return self._entry

    @property
    def query_position(self) -> int:
        """
        Position within the read, as reported by the engine.

        Not checked against the read length.
        """
        return int(self._inner().query_position_or_next)

    @property
    def indel(self) -> Indel:
        return Indel.from_raw(int(self._inner().indel))

    @property
    def is_del(self) -> bool:
        return bool(self._inner().is_del)

    @property
    def is_head(self) -> bool:
        return bool(self._inner().is_head)

    @property
    def is_tail(self) -> bool:
        return bool(self._inner().is_tail)

    @property
    def is_refskip(self) -> bool:
        return bool(self._inner().is_refskip)

    def record(self) -> Any:
        """The corresponding read record."""
        return self._record_factory(self._inner().alignment)


class PileupColumn:
    """
    A pileup over one genomic position.

    The per-read entries belong to the engine and are only valid until the
    owning PileupSequence advances. The coordinates and depth are plain
    integers and remain readable afterwards.
    """

    __slots__ = (
        "_entries",
        "_borrow",
        "_record_factory",
        "reference_id",
        "position",
        "depth",
    )

    def __init__(
        self,
        entries: Sequence[PileupReadLike],
        reference_id: int,
        position: int,
        depth: int,
        borrow: _Borrow,
        record_factory: RecordFactory = _same_record,
    ) -> None:
        self._entries = entries
        self._borrow = borrow
        self._record_factory = record_factory
        self.reference_id = reference_id
        self.position = position
        self.depth = depth

    def __len__(self) -> int:
        return self.depth

    def __repr__(self) -> str:
        return (
            f"PileupColumn(reference_id={self.reference_id}, "
            f"position={self.position}, depth={self.depth})"
        )

    def alignments(self) -> Iterator[Alignment]:
        """Iterate over the `depth` alignments of this column, once."""
        if not self._borrow.alive:
            raise StaleColumnError(self.position)
        return self._iter_alignments()

    def _iter_alignments(self) -> Iterator[Alignment]:
        entries = self._entries
        borrow = self._borrow
        for i in range(self.depth):
            if not borrow.alive:
                raise StaleColumnError(self.position)
            yield Alignment(entries[i], borrow, self.position, self._record_factory)


# ---------------------------------------------------------------------------
# Sequence of columns
# ---------------------------------------------------------------------------

class SequenceState(enum.Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CLOSED = "closed"


class StepKind(enum.Enum):
    COLUMN = "column"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class Step:
    """Outcome of one pull: a column, end-of-data, or the pileup error."""

    kind: StepKind
    column: Optional[PileupColumn] = None
    error: Optional[PileupError] = None


_END = Step(StepKind.END)


def _teardown(engine: PileupEngine) -> None:
    LOG.debug("releasing pileup engine %r", engine)
    try:
        engine.reset()
    finally:
        engine.destroy()


class PileupSequence:
    """
    Forward-only iterator over the columns produced by a pileup engine.

    Each pull makes exactly one engine call. Teardown (engine reset, then
    destroy) runs exactly once: on exhaustion, on error, on close() / exit of
    a `with` block, or when the sequence is garbage collected.
    """

    def __init__(
        self,
        engine: PileupEngine,
        *,
        record_factory: Optional[RecordFactory] = None,
    ) -> None:
        self._engine = engine
        self._record_factory = record_factory or _same_record
        self._state = SequenceState.ACTIVE
        self._borrow = _Borrow()
        # Must not reference self, or the sequence could never be collected
        self._finalizer = weakref.finalize(self, _teardown, engine)

    @property
    def state(self) -> SequenceState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is not SequenceState.ACTIVE

    def set_max_depth(self, depth: int) -> None:
        """Cap the number of reads the engine keeps per column."""
        if self.closed:
            raise ValueError(f"set_max_depth on a {self._state.value} pileup sequence")
        self._engine.set_maxcnt(depth)

    def advance(self) -> Step:
        """Pull the next column from the engine."""
        if self.closed:
            return _END

        # The previous column's entries may be reused by the engine from here on
        self._borrow.alive = False
        self._borrow = _Borrow()

        try:
            entries, tid, pos, depth = self._engine.next_column()
        except Exception:
            self._release(SequenceState.FAILED)
            raise

        if entries is not None and depth < 0:
            # Not a combination this layer can interpret; surfaced, not guessed
            self._release(SequenceState.FAILED)
            return Step(
                StepKind.ERROR,
                error=PileupError(f"engine returned a column with negative depth {depth}"),
            )

        if entries is not None:
            column = PileupColumn(
                entries, tid, pos, depth, self._borrow, self._record_factory
            )
            return Step(StepKind.COLUMN, column=column)

        if depth == ERROR_DEPTH:
            self._release(SequenceState.FAILED)
            return Step(StepKind.ERROR, error=PileupError())

        self._release(SequenceState.EXHAUSTED)
        return _END

    def close(self) -> None:
        """Stop iterating and release the engine. Safe to call repeatedly."""
        if self._state is SequenceState.ACTIVE:
            self._release(SequenceState.CLOSED)

    def _release(self, state: SequenceState) -> None:
        LOG.debug("pileup sequence %s -> %s", self._state.value, state.value)
        self._state = state
        self._borrow.alive = False
        self._finalizer()

    def __iter__(self) -> "PileupSequence":
        return self

    def __next__(self) -> PileupColumn:
        step = self.advance()
        if step.kind is StepKind.COLUMN:
            return step.column  # type: ignore[return-value]
        if step.kind is StepKind.ERROR:
            raise step.error  # type: ignore[misc]
        raise StopIteration

    def __enter__(self) -> "PileupSequence":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
