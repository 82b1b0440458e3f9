#!/usr/bin/env python3
"""
Static Cloner - clone a website into static files for offline hosting.

Discovers pages breadth-first, downloads pages and assets, rewrites links to
relative local paths and marks content that needs a backend.

Usage:
    static-cloner --config site.json              # enumerate only
    static-cloner --config site.json --download   # download from manifest.json
    static-cloner --config site.json --full       # both

Features:
    - Breadth-first URL discovery with depth, page and pattern limits
    - Respects robots.txt and a token-bucket rate limit
    - Concurrent page and asset downloads with retries
    - Rewrites links and CSS references for offline viewing
    - Marks forms and scripts that need a backend
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

from static_cloner.config import CloneConfig, load_config
from static_cloner.crawler.cloner import CloneResult, SiteCloner
from static_cloner.crawler.downloader import DownloadStats
from static_cloner.errors import ConfigError, ManifestError
from static_cloner.utils.log import (
    console,
    create_progress,
    format_bytes,
    parse_level,
    print_error,
    print_info,
    print_status,
    print_success,
    print_warning,
    setup_logger,
)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Argument list (defaults to sys.argv)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='static-cloner',
        description='Clone websites into static files for offline hosting',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --config site.json
    %(prog)s --config site.json --download
    %(prog)s -c site.json --full --verbose

Without a phase flag only enumeration runs, so the manifest can be reviewed
before downloading.
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        required=True,
        help='Path to the JSON configuration file'
    )

    phase = parser.add_mutually_exclusive_group()
    phase.add_argument(
        '--enumerate',
        action='store_true',
        help='Discover URLs and write manifest.json (default)'
    )
    phase.add_argument(
        '--download',
        action='store_true',
        help='Download pages and assets listed in an existing manifest.json'
    )
    phase.add_argument(
        '--full',
        action='store_true',
        help='Enumerate, then download'
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    verbosity.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress output except errors'
    )

    return parser.parse_args(argv)


def resolve_log_level(args: argparse.Namespace, config: Optional[CloneConfig] = None) -> int:
    """Command line flags win over the config file's logging level."""
    if args.verbose:
        return logging.DEBUG
    if args.quiet:
        return logging.ERROR
    if config is not None:
        return parse_level(config.logging.level)
    return logging.INFO


def log_file_path(config: CloneConfig) -> Optional[str]:
    """Timestamped log file in the configured directory, if file logging is on."""
    if not config.logging.log_to_file:
        return None
    os.makedirs(config.logging.log_directory, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return os.path.join(config.logging.log_directory, f"clone-{stamp}.log")


def print_banner() -> None:
    """Print the application banner."""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                       STATIC CLONER                           ║
║          Clone websites into static, offline files            ║
╚═══════════════════════════════════════════════════════════════╝
    """
    print_status(banner, "bold cyan")


def print_summary(result: CloneResult) -> None:
    """
    Print the run summary.

    Args:
        result: CloneResult object
    """
    console.print()
    console.rule("[bold green]CLONE SUMMARY")

    if result.manifest is not None:
        console.print(f"  URLs discovered:   {result.manifest.total_urls}")
        console.print(f"  Max depth reached: {result.manifest.actual_max_depth}")

    if result.download is not None:
        stats = result.download.stats
        console.print(
            f"  Pages:             {stats.pages_downloaded} downloaded, "
            f"{stats.pages_failed} failed, {stats.pages_skipped} skipped"
        )
        console.print(
            f"  Assets:            {stats.assets_downloaded} downloaded, "
            f"{stats.assets_failed} failed, {stats.assets_skipped} skipped"
        )
        console.print(f"  Total size:        {format_bytes(stats.total_bytes)}")

    if result.rewrite is not None:
        console.print(f"  Links rewritten:   {result.rewrite.links_rewritten}")

    if result.dynamic is not None:
        console.print(
            f"  Dynamic pages:     {result.dynamic.stats.pages_with_dynamic_content}"
        )

    console.print(f"  Errors:            {len(result.errors)}")
    console.print(f"  Duration:          {result.duration_seconds:.1f} seconds")
    console.rule()

    if result.dynamic is not None:
        for recommendation in result.dynamic.recommendations:
            print_info(recommendation)


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the static cloner.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)
    setup_logger(level=resolve_log_level(args))

    if not args.quiet:
        print_banner()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        return 1

    setup_logger(level=resolve_log_level(args, config), log_file=log_file_path(config))

    do_enumerate = args.enumerate or args.full or not args.download
    do_download = args.download or args.full

    progress = None
    tasks = {}

    def on_progress(phase: str, stats: DownloadStats) -> None:
        if phase == "pages":
            total, done = stats.pages_total, stats.pages_done
            status = f"{stats.pages_failed} failed"
        else:
            total, done = stats.assets_total, stats.assets_done
            status = format_bytes(stats.total_bytes)
        if phase not in tasks:
            tasks[phase] = progress.add_task(f"Downloading {phase}", total=total, status="")
        progress.update(tasks[phase], total=total, completed=done, status=status)

    try:
        if do_download and not args.quiet:
            progress = create_progress()
            cloner = SiteCloner(config, on_progress=on_progress)
            with progress:
                result = await cloner.run(enumerate=do_enumerate, download=do_download)
        else:
            cloner = SiteCloner(config)
            result = await cloner.run(enumerate=do_enumerate, download=do_download)

    except ManifestError as e:
        print_error(str(e))
        return 1
    except Exception as e:
        print_error(f"Error: {e}")
        if args.verbose:
            console.print_exception()
        return 1

    if not args.quiet:
        print_summary(result)

    if result.errors:
        print_warning(f"{len(result.errors)} item(s) failed, see errors.json")

    if do_download:
        print_success(f"Website cloned to: {cloner.output_dir}")
    else:
        print_success(f"Review {cloner.manifest_path}, then run again with --download")

    return 0


def run() -> None:
    """Entry point wrapper for the console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print_error("Clone interrupted by user")
        sys.exit(1)


if __name__ == '__main__':
    run()
