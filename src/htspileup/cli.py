# src/htspileup/cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import pysam

from .engine import DEFAULT_MAX_DEPTH, PileupConfig, pileups
from .errors import PileupError

LOG = logging.getLogger("htspileup.cli")


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger("htspileup").setLevel(level)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv).")
def main(verbose: int) -> None:
    """
    htspileup command-line interface.

    Subcommands:
      depth : per-column depth and indel counts of an alignment file
    """
    _setup_logging(verbose)


@main.command(name="depth")
@click.argument(
    "bam_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
)
@click.option("--contig", "-c", default=None, help="Restrict to this contig.")
@click.option("--start", type=int, default=None, help="0-based start of the region.")
@click.option("--stop", type=int, default=None, help="0-based, exclusive end of the region.")
@click.option(
    "--truncate/--no-truncate",
    default=False,
    show_default=True,
    help="Only report columns inside [start, stop).",
)
@click.option(
    "--max-depth",
    type=int,
    default=DEFAULT_MAX_DEPTH,
    show_default=True,
    help="Maximum number of reads kept per column.",
)
@click.option(
    "--min-base-quality",
    type=int,
    default=0,
    show_default=True,
    help="Skip bases below this quality.",
)
def depth_cmd(
    bam_path: Path,
    contig: Optional[str],
    start: Optional[int],
    stop: Optional[int],
    truncate: bool,
    max_depth: int,
    min_base_quality: int,
) -> None:
    """
    Print one line per pileup column of BAM_PATH:

        contig  position(1-based)  depth  insertions  deletions

    The file must be coordinate-sorted and indexed.
    """
    config = PileupConfig(
        contig=contig,
        start=start,
        stop=stop,
        truncate=truncate,
        max_depth=max_depth,
        min_base_quality=min_base_quality,
    )

    n_columns = 0
    with pysam.AlignmentFile(str(bam_path)) as bam:
        with pileups(bam, config) as columns:
            try:
                for column in columns:
                    n_ins = n_del = 0
                    for aln in column.alignments():
                        indel = aln.indel
                        if indel.is_insertion:
                            n_ins += 1
                        elif indel.is_deletion:
                            n_del += 1
                    click.echo(
                        f"{bam.get_reference_name(column.reference_id)}\t"
                        f"{column.position + 1}\t{column.depth}\t{n_ins}\t{n_del}"
                    )
                    n_columns += 1
            except PileupError as exc:
                raise click.ClickException(f"{bam_path}: {exc}") from exc

    LOG.info("wrote %d pileup columns for %s", n_columns, bam_path)


if __name__ == "__main__":
    sys.exit(main())
