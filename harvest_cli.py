#!/usr/bin/env python3
"""
pdf-harvest CLI Interface
=========================
Command-line front end for the harvest engine.

Features:
- Estimate total download size
- Download every listed document (5 at a time, resumable)
- Verify stored files against recorded checksums
- Interactive menu mode
"""

import argparse
import sys
import time
import signal
import threading
from typing import Callable, Optional

from harvest_core import (
    HarvestCore,
    DEFAULT_LISTING_URL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_HASH_ALGORITHM,
)


MENU = """
===============================
📂 pdf-harvest
===============================
1️⃣  Calculate download storage size
2️⃣  Download all documents (5 at a time)
3️⃣  Verify file integrity
4️⃣  Exit
===============================
"""


class HarvestCLI:
    """Command-line interface for pdf-harvest."""

    def __init__(self, quiet: bool = False):
        self.core = None
        self.quiet = quiet
        self.log_index = 0

        # Handle Ctrl+C gracefully
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        print("\n🛑 Shutdown signal received, exiting...")
        sys.exit(0)

    def _build_core(self, args) -> HarvestCore:
        self.core = HarvestCore(
            output_dir=args.output,
            listing_url=args.listing_url,
            hash_algorithm=args.algorithm,
        )
        self.log_index = 0
        return self.core

    def _print_header(self):
        """Print CLI header."""
        print("=" * 70)
        print("🔥 pdf-harvest - Bulk Document Downloader")
        print("=" * 70)
        print()

    def _print_new_logs(self):
        logs, self.log_index = self.core.get_logs(self.log_index)
        for line in logs:
            if self.quiet and "[INFO]" in line:
                continue
            print(line)

    def _run_monitored(self, job: Callable):
        """
        Run an engine operation on a background thread while streaming its log.

        Returns:
            Whatever the job returned

        Raises:
            Whatever the job raised
        """
        result = {}

        def target():
            try:
                result["value"] = job()
            except Exception as e:
                result["error"] = e

        worker = threading.Thread(target=target, daemon=True)
        worker.start()

        while worker.is_alive():
            self._print_new_logs()
            time.sleep(0.2)
        worker.join()
        self._print_new_logs()

        if "error" in result:
            raise result["error"]
        return result.get("value")

    # =========================
    # COMMANDS
    # =========================
    def estimate(self, args) -> int:
        """Estimate the total size of all listed documents."""
        core = self.core or self._build_core(args)
        locators = self._run_monitored(core.discover)
        estimate = self._run_monitored(lambda: core.estimate_total_size(locators))

        print("\n" + "=" * 70)
        print(f"📊 Estimated Total Data Size: {estimate.total_megabytes:.2f} MB")
        print(f"Documents sized: {estimate.counted} | Failed: {estimate.failed}")
        print("=" * 70)
        return 0

    def download(self, args) -> int:
        """Download every listed document."""
        core = self.core or self._build_core(args)
        locators = self._run_monitored(core.discover)
        summary = self._run_monitored(lambda: core.run(locators))

        print("\n" + "=" * 70)
        print("✅ DOWNLOAD COMPLETE" if not summary.failed else "⚠️  DOWNLOAD FINISHED WITH ERRORS")
        print("=" * 70)
        print(f"Downloaded: {summary.downloaded}")
        print(f"Skipped (already on disk): {summary.skipped}")
        print(f"Failed: {summary.failed}")
        for name in summary.failed_names:
            print(f"   ❌ {name}")
        print(f"Checksums: {core.checksum_path}")
        print(f"Manifest: {core.manifest_path}")
        print("=" * 70)
        return 1 if summary.failed else 0

    def verify(self, args) -> int:
        """Verify stored files against the checksum store."""
        core = self.core or self._build_core(args)
        report = self._run_monitored(core.verify)

        if not report.checksums_present:
            print("❌ No checksums found. Run a download first.")
            return 1

        print("\n" + "=" * 70)
        print("🔎 VERIFICATION COMPLETE")
        print("=" * 70)
        print(f"OK: {report.ok_count}")
        print(f"Corrupted: {len(report.corrupted)}")
        print(f"Missing: {len(report.missing)}")
        if report.intact:
            print("🎉 All files are intact!")
        else:
            print("⚠️  Some files are corrupted or missing!")
            for name in report.problems:
                print(f"   ❌ {name}")
        print("=" * 70)
        return 0 if report.intact else 1

    def menu(self, args, read_choice: Optional[Callable[[str], str]] = None) -> int:
        """
        Interactive menu loop. Errors are printed and the menu is shown again.

        Args:
            args: Parsed arguments (output, listing_url, algorithm)
            read_choice: Prompt function, input() by default
        """
        read_choice = read_choice or input
        self._build_core(args)
        actions = {'1': self.estimate, '2': self.download, '3': self.verify}

        while True:
            print(MENU)
            try:
                choice = read_choice("Choose an option: ").strip()
            except EOFError:
                choice = '4'

            if choice == '4':
                print("👋 Exiting... Enjoy your archive!")
                return 0

            action = actions.get(choice)
            if action is None:
                print("❌ Invalid option. Please choose again.")
                continue

            try:
                action(args)
            except Exception as e:
                print(f"\n❌ Operation failed: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="pdf-harvest - Bulk Document Downloader CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive menu
  python harvest_cli.py menu --output ./downloads

  # Estimate size of everything on the listing page
  python harvest_cli.py estimate

  # Download all documents (safe to re-run; existing files are skipped)
  python harvest_cli.py download --output ./downloads

  # Verify integrity of downloaded files
  python harvest_cli.py verify --output ./downloads
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--output', default=DEFAULT_OUTPUT_DIR,
                        help=f'Download directory (default: {DEFAULT_OUTPUT_DIR})')
    common.add_argument('--listing-url', default=DEFAULT_LISTING_URL,
                        help='Page listing the documents to download')
    common.add_argument('--algorithm', default=DEFAULT_HASH_ALGORITHM,
                        help=f'Checksum algorithm (default: {DEFAULT_HASH_ALGORITHM})')
    common.add_argument('--quiet', '-q', action='store_true',
                        help='Hide informational log lines')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')
    subparsers.add_parser('estimate', parents=[common], help='Estimate total download size')
    subparsers.add_parser('download', parents=[common], help='Download all documents')
    subparsers.add_parser('verify', parents=[common], help='Verify downloaded files')
    subparsers.add_parser('menu', parents=[common], help='Interactive menu')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    cli = HarvestCLI(quiet=args.quiet)
    cli._print_header()

    commands = {
        'estimate': cli.estimate,
        'download': cli.download,
        'verify': cli.verify,
        'menu': cli.menu,
    }
    try:
        code = commands[args.command](args)
    except Exception as e:
        print(f"\n❌ Operation failed: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
