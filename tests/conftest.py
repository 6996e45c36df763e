from __future__ import annotations

from pathlib import Path

import pysam
import pytest


# (name, 0-based start, cigar, sequence)
READS = [
    ("r1", 10, [(0, 10)], "ACGTACGTAC"),
    ("r2", 12, [(0, 3), (1, 2), (0, 5)], "GTATTCGTAC"),
    ("r3", 14, [(0, 2), (2, 3), (0, 6)], "ACGTACGT"),
]


def _write_sorted_bam(bam_path: Path) -> None:
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": "chr1", "LN": 100}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as out_bam:
        for name, start, cigar, seq in READS:
            aln = pysam.AlignedSegment()
            aln.query_name = name
            aln.query_sequence = seq
            aln.flag = 0
            aln.reference_id = 0
            aln.reference_start = start
            aln.mapping_quality = 60
            aln.cigartuples = cigar
            aln.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
            out_bam.write(aln)


@pytest.fixture
def indexed_bam(tmp_path: Path) -> Path:
    """Three overlapping reads on chr1: one plain, one with a 2bp insertion, one with a 3bp deletion."""
    bam_path = tmp_path / "tiny.bam"
    _write_sorted_bam(bam_path)
    pysam.index(str(bam_path))
    return bam_path
