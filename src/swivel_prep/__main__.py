"""Vocabulary preparation for Swivel co-occurrence training.

Usage:
    # Build the vocabulary of a corpus with 8 parallel readers
    python -m swivel_prep vocab --input corpus.txt -n 8

    # How fast can this disk be read at all?
    python -m swivel_prep read --file corpus.txt --block-mb 100
"""

import argparse
import logging
import multiprocessing
import sys

import tqdm

from .config import KB, MB, PrepConfig
from .errors import InvalidArgumentError, PipelineCancelledError, PipelineTimeoutError
from .pre_tokenization import build_vocabulary
from .utils import measure_read_throughput
from .vocabulary import TopWordsPrinter

logger = logging.getLogger("swivel_prep")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swivel_prep", description="Build a word vocabulary for Swivel.")
    parser.add_argument("--log-level", default="warning", choices=["debug", "info", "warning", "error"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    vocab = subparsers.add_parser("vocab", help="count and rank the words of a text file")
    vocab.add_argument("--input", required=True, help="the input text file")
    vocab.add_argument("-n", "--num-workers", type=int, default=1, help="number of parallel IO chunks")
    vocab.add_argument("--processes", type=int, default=None, help="worker pool size (default: -n)")
    vocab.add_argument("--buffer-mb", type=int, default=100, help="max read buffer per worker, in MB")
    vocab.add_argument("--max-token-length", type=int, default=10 * KB, help="longest counted word, in bytes")
    vocab.add_argument("--timeout", type=float, default=None, help="give up after this many seconds")
    vocab.add_argument("--top", type=int, default=10, help="number of top words to print")
    vocab.add_argument("--sequential", action="store_true", help="read chunks one by one in this process")
    vocab.add_argument("--no-progress", action="store_true", help="hide the progress bar")

    read = subparsers.add_parser("read", help="measure sequential read throughput of a file")
    read.add_argument("--file", required=True, help="the file to read")
    read.add_argument("--block-mb", type=int, default=100, help="size of each read, in MB")
    return parser


def run_vocab(args: argparse.Namespace) -> int:
    config = PrepConfig(
        num_workers=args.num_workers,
        processes=args.processes,
        max_buffer_mb=args.buffer_mb,
        max_token_length=args.max_token_length,
        timeout=args.timeout,
        progress=not args.no_progress,
    )
    tqdm.tqdm.write(f"Building vocabulary of '{args.input}' with {config.num_workers} chunks...")
    report = build_vocabulary(args.input, config, parallel=not args.sequential)
    tqdm.tqdm.write(report.summary())
    if not report.complete:
        for chunk in report.failed_chunks:
            tqdm.tqdm.write(
                f"WARNING: chunk {chunk.index} read {chunk.bytes_read} of {chunk.byte_range.size} bytes: {chunk.error}"
            )
    TopWordsPrinter(top=args.top).consume(report.ranked)
    return 0


def run_read(args: argparse.Namespace) -> int:
    stats = measure_read_throughput(args.file, block_mb=args.block_mb)
    tqdm.tqdm.write(f"{stats.bytes_read // MB} Mb total, avg: {stats.mb_per_sec:.2f} Mb/sec")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        if args.command == "vocab":
            return run_vocab(args)
        return run_read(args)
    except InvalidArgumentError as e:
        logger.error("%s", e)
        return 2
    except (OSError, PipelineTimeoutError, PipelineCancelledError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    multiprocessing.freeze_support()
    sys.exit(main())
