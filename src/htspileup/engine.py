# src/htspileup/engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

import pysam

from .pileup import ERROR_DEPTH, PileupSequence, RecordFactory
from .types import RawColumn

LOG = logging.getLogger("htspileup.engine")

# BAM_FUNMAP | BAM_FSECONDARY | BAM_FQCFAIL | BAM_FDUP
DEFAULT_FLAG_FILTER = 0x704

# htslib's own per-column read cap
DEFAULT_MAX_DEPTH = 8000

_END: RawColumn = (None, 0, 0, 0)
_ERROR: RawColumn = (None, 0, 0, ERROR_DEPTH)


@dataclass
class PileupConfig:
    """
    Parameters handed to pysam.AlignmentFile.pileup().

    The defaults follow htslib's plain bam_plp iterator rather than pysam's
    mpileup-style defaults: no base-quality filter, no overlap detection.
    """

    contig: Optional[str] = None
    start: Optional[int] = None
    stop: Optional[int] = None
    truncate: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH
    stepper: str = "all"
    min_base_quality: int = 0
    ignore_overlaps: bool = False
    ignore_orphans: bool = True
    flag_filter: int = DEFAULT_FLAG_FILTER

    def pileup_kwargs(self) -> dict:
        return {
            "contig": self.contig,
            "start": self.start,
            "stop": self.stop,
            "truncate": self.truncate,
            "max_depth": self.max_depth,
            "stepper": self.stepper,
            "min_base_quality": self.min_base_quality,
            "ignore_overlaps": self.ignore_overlaps,
            "ignore_orphans": self.ignore_orphans,
            "flag_filter": self.flag_filter,
        }


class PysamPileupEngine:
    """
    Pileup engine backed by a pysam column iterator.

    Implements htspileup.types.PileupEngine. The pysam.PileupRead list of
    each column is handed out as-is; a pysam error while advancing is
    logged and reported through the depth -1 sentinel.

    set_maxcnt() can only lower the per-column read count below the
    max_depth the pysam iterator was built with (PileupConfig.max_depth);
    larger values are accepted but have no effect.
    """

    def __init__(
        self,
        columns: Iterator[pysam.PileupColumn],
        *,
        owned: Optional[pysam.AlignmentFile] = None,
    ) -> None:
        self._columns: Optional[Iterator[pysam.PileupColumn]] = columns
        self._owned = owned
        self._maxcnt = -1

    @classmethod
    def from_alignment_file(
        cls,
        bam: pysam.AlignmentFile,
        config: Optional[PileupConfig] = None,
        *,
        owns_file: bool = False,
    ) -> "PysamPileupEngine":
        config = config or PileupConfig()
        columns = bam.pileup(**config.pileup_kwargs())
        return cls(columns, owned=bam if owns_file else None)

    @property
    def maxcnt(self) -> int:
        return self._maxcnt

    def next_column(self) -> RawColumn:
        if self._columns is None:
            return _END
        try:
            column = next(self._columns)
            reads = column.pileups
        except StopIteration:
            return _END
        except (OSError, ValueError) as exc:
            LOG.warning("pysam failed while building pileup column: %s", exc)
            return _ERROR

        if 0 <= self._maxcnt < len(reads):
            reads = reads[: self._maxcnt]
        return reads, column.reference_id, column.reference_pos, len(reads)

    def set_maxcnt(self, maxcnt: int) -> None:
        # Applies to columns produced after this call; < 0 disables the cap
        self._maxcnt = maxcnt

    def reset(self) -> None:
        self._columns = None

    def destroy(self) -> None:
        if self._owned is not None:
            self._owned.close()
            self._owned = None


def pileups(
    bam: pysam.AlignmentFile,
    config: Optional[PileupConfig] = None,
    *,
    record_factory: Optional[RecordFactory] = None,
) -> PileupSequence:
    """
    Iterate over the pileup columns of an already open alignment file.

    The file stays open after the sequence is torn down.
    """
    engine = PysamPileupEngine.from_alignment_file(bam, config)
    return PileupSequence(engine, record_factory=record_factory)


def open_pileups(
    path: Union[str, Path],
    config: Optional[PileupConfig] = None,
    *,
    record_factory: Optional[RecordFactory] = None,
) -> PileupSequence:
    """
    Open a SAM/BAM/CRAM file and iterate over its pileup columns.

    The file is closed when the sequence is torn down.
    """
    bam = pysam.AlignmentFile(str(path))
    try:
        engine = PysamPileupEngine.from_alignment_file(bam, config, owns_file=True)
    except Exception:
        bam.close()
        raise
    LOG.debug("opened %s for pileup", path)
    return PileupSequence(engine, record_factory=record_factory)
