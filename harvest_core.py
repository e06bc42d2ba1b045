# harvest_core.py
# PDF-HARVEST CORE ENGINE
# Version: 1.0.0

"""
PDF-HARVEST CORE ENGINE
=======================
A resumable bulk downloader for a fixed list of published documents.

GUARANTEES:
- At most one download per resource (the final file is the "done" marker)
- Partitions of at most 500 files, chosen by position in the listing
- Checksum store persisted after every successful download
- Atomic safe-swap: a file only gets its final name after its checksum is stored
- Bounded concurrency: groups of 5, each group fully finished before the next
"""

import os
import re
import json
import hashlib
import threading
import requests
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor, wait
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Tuple, Iterable
from datetime import datetime
from urllib.parse import urljoin, urlparse, unquote

from bs4 import BeautifulSoup

# =========================================================
# CONSTANTS
# =========================================================

# Files per partition directory
PARTITION_CAPACITY = 500
PARTITION_PREFIX = "Partition_"

# Downloads in flight per group
CONCURRENCY_WIDTH = 5

# Hash read buffer
HASH_BUFFER_SIZE = 4096
DEFAULT_HASH_ALGORITHM = "md5"

# Download Chunk Size (128KB)
DOWNLOAD_CHUNK_SIZE = 131072

# Connect/read timeout per request, not a retry policy
CONNECTION_TIMEOUT = 15

# Default Configuration
DEFAULT_LISTING_URL = "https://www.archives.gov/research/jfk/release-2025"
DEFAULT_LINK_SELECTOR = "table a[href$='.pdf']"
DEFAULT_OUTPUT_DIR = str(Path.cwd() / "downloads")

CHECKSUM_FILE_NAME = "checksums.json"
MANIFEST_FILE_NAME = "index.json"
DEBUG_LOG_NAME = "harvest_debug.log"
PART_SUFFIX = ".part"

# Filename Sanitization
UNSAFE_NAME_CHARS = re.compile(r'[<>:"/\\|?*]')

USER_AGENT = "pdf-harvest/1.0 (Bulk Document Mirroring Tool)"


class DownloadError(Exception):
    """Raised by the engine when a single resource cannot be downloaded."""


# =========================================================
# PARTITIONS
# =========================================================
def partition_number(sequence_index: int) -> int:
    """
    Map a 1-based position in the listing to its partition number.

    Positions 1..500 map to 1, 501..1000 to 2, and so on.
    """
    if sequence_index < 1:
        raise ValueError(f"sequence index must be >= 1, got {sequence_index}")
    return (sequence_index - 1) // PARTITION_CAPACITY + 1


def assign_partition(root: Path, sequence_index: int) -> Path:
    """
    Resolve (and create if needed) the partition directory for a resource.

    Args:
        root: Download root directory
        sequence_index: 1-based position of the resource in the listing

    Returns:
        Path of the partition directory
    """
    folder = Path(root) / f"{PARTITION_PREFIX}{partition_number(sequence_index)}"
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def list_partitions(root: Path) -> List[Path]:
    """Existing partition directories under root, ordered by number."""
    root = Path(root)
    if not root.is_dir():
        return []

    found = []
    for entry in root.iterdir():
        if not entry.is_dir() or not entry.name.startswith(PARTITION_PREFIX):
            continue
        suffix = entry.name[len(PARTITION_PREFIX):]
        if suffix.isdigit():
            found.append((int(suffix), entry))
    return [path for _, path in sorted(found)]


def resource_name(locator: str) -> str:
    """
    Derive the on-disk file name from a locator.

    Args:
        locator: Absolute resource URL

    Returns:
        Last segment of the raw URL path, then decoded and sanitized

    Raises:
        DownloadError: if the URL path has no final segment
    """
    name = unquote(urlparse(locator).path.rsplit("/", 1)[-1])
    if not name:
        raise DownloadError(f"No file name in locator: {locator}")
    return UNSAFE_NAME_CHARS.sub("_", name)


# =========================================================
# HASHING
# =========================================================
def hash_file(file_path: Path, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Calculate the hex digest of a file.

    Args:
        file_path: Path to file
        algorithm: Any hashlib algorithm name

    Returns:
        Hex digest of the file contents
    """
    digest = hashlib.new(algorithm)
    with open(file_path, 'rb') as f:
        while chunk := f.read(HASH_BUFFER_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


# =========================================================
# CHECKSUM STORE
# =========================================================
def _write_json_atomic(path: Path, payload) -> None:
    tmp_path = Path(str(path) + ".tmp")
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        os.replace(str(tmp_path), str(path))
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


class ChecksumStore:
    """
    Cumulative name -> digest ledger, shared by all workers of a run.

    Every mutation goes through record(), which merges the entry and
    rewrites the whole file while holding the lock.
    """

    def __init__(self, path: Path, entries: Optional[Dict[str, str]] = None):
        self.path = Path(path)
        self._entries: Dict[str, str] = dict(entries or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path) -> "ChecksumStore":
        """
        Load the store from disk, or start empty if the file is absent.

        Raises:
            ValueError: if the file exists but is not a JSON object
        """
        path = Path(path)
        if not path.exists():
            return cls(path)

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Checksum store is not a JSON object: {path}")
        return cls(path, {str(k): str(v) for k, v in data.items()})

    def exists(self) -> bool:
        return self.path.exists()

    def record(self, name: str, digest: str) -> Optional[str]:
        """
        Merge one entry and persist the whole store.

        Returns:
            The digest previously stored under name, or None
        """
        with self._lock:
            previous = self._entries.get(name)
            self._entries[name] = digest
            try:
                self._save_locked()
            except OSError:
                self._restore_locked(name, previous)
                raise
            return previous

    def discard(self, name: str, previous: Optional[str] = None) -> None:
        """Undo a record(): put back the previous digest (or drop the entry) and persist."""
        with self._lock:
            self._restore_locked(name, previous)
            self._save_locked()

    def _restore_locked(self, name: str, previous: Optional[str]) -> None:
        if previous is None:
            self._entries.pop(name, None)
        else:
            self._entries[name] = previous

    def save(self) -> None:
        with self._lock:
            self._save_locked()

    def _save_locked(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _write_json_atomic(self.path, self._entries)

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(name)

    def items(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._entries.items())

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =========================================================
# MANIFEST
# =========================================================
@dataclass
class ManifestRecord:
    """One newly downloaded file, as written to the manifest."""
    file_name: str
    url: str
    size: int
    checksum: str
    index: int = field(default=0, compare=False, repr=False)

    def to_dict(self) -> Dict:
        return {
            "fileName": self.file_name,
            "url": self.url,
            "size": self.size,
            "checksum": self.checksum,
        }


class Manifest:
    """Ordered records of the files downloaded during one run."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._records: List[ManifestRecord] = []
        self._lock = threading.Lock()

    def append(self, record: ManifestRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> List[ManifestRecord]:
        """Records ordered by position in the listing."""
        with self._lock:
            return sorted(self._records, key=lambda r: r.index)

    def save(self) -> None:
        """Overwrite the manifest file with this run's records."""
        payload = [r.to_dict() for r in self.records]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _write_json_atomic(self.path, payload)

    @staticmethod
    def read(path: Path) -> List[Dict]:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# =========================================================
# RESULT TYPES
# =========================================================
@dataclass
class RunSummary:
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    failed_names: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.downloaded + self.skipped + self.failed


@dataclass
class VerifyReport:
    """
    Outcome of a verification pass.

    checksums_present is False when there was no store to verify against;
    in that case nothing was scanned and every list is empty.
    """
    checksums_present: bool = True
    ok: List[str] = field(default_factory=list)
    corrupted: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)

    @property
    def ok_count(self) -> int:
        return len(self.ok)

    @property
    def intact(self) -> bool:
        return self.checksums_present and not self.problems


@dataclass
class SizeEstimate:
    total_bytes: int = 0
    counted: int = 0
    failed: int = 0

    @property
    def total_megabytes(self) -> float:
        return self.total_bytes / 1e6


# =========================================================
# HARVEST CORE ENGINE CLASS
# =========================================================
class HarvestCore:
    """
    The central orchestrator for listing, downloading and verifying documents.

    One engine owns one download root. Running two engines against the
    same root at the same time is not supported.
    """

    def __init__(self, output_dir: str = None, listing_url: str = DEFAULT_LISTING_URL,
                 hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
                 concurrency: int = CONCURRENCY_WIDTH,
                 session: requests.Session = None):
        """
        Initialize the engine.

        Args:
            output_dir: Download root directory
            listing_url: Page listing the documents to fetch
            hash_algorithm: hashlib algorithm used for checksums
            concurrency: Downloads per group
            session: Preconfigured HTTP session (a new one is created if None)
        """

        # ===== PATH CONFIGURATION =====
        self.output_dir = Path(output_dir) if output_dir else Path(DEFAULT_OUTPUT_DIR)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.checksum_path = self.output_dir / CHECKSUM_FILE_NAME
        self.manifest_path = self.output_dir / MANIFEST_FILE_NAME

        # ===== DISCOVERY =====
        self.listing_url = listing_url

        # ===== HASHING =====
        # Raises ValueError for names hashlib does not know
        hashlib.new(hash_algorithm)
        self.hash_algorithm = hash_algorithm

        # ===== WORKER CONFIGURATION =====
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency

        # ===== SESSION PERSISTENCE =====
        if session is None:
            session = requests.Session()
            session.headers.update({'User-Agent': USER_AGENT})
        self.session = session

        # ===== UI BRIDGE =====
        self.debug_log = deque(maxlen=50000)
        self.log_total = 0
        self.log_lock = threading.Lock()

        # ===== DEBUG LOG FILE =====
        self.log_file = self.output_dir / DEBUG_LOG_NAME
        if self.log_file.exists():
            self.log_file.unlink()

        self._log("Core Engine Initialized", "info")
        self._log(f"Output Directory: {self.output_dir}", "info")
        self._log(f"Hash: {self.hash_algorithm} | Concurrency: {self.concurrency}", "info")

    def _log(self, message: str, level: str = "info"):
        """
        Thread-safe logging to both debug file and UI event stream.

        Args:
            message: Log message
            level: Log level (info, success, warning, error)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        formatted = f"[{timestamp}] [{level.upper()}] {message}"

        with self.log_lock:
            try:
                with open(self.log_file, 'a', encoding='utf-8') as f:
                    f.write(formatted + "\n")
            except OSError:
                pass

            self.debug_log.append(formatted)
            self.log_total += 1

    def get_logs(self, from_index: int = 0) -> Tuple[List[str], int]:
        """
        Get log entries from a specific index.

        Args:
            from_index: Starting index for log retrieval

        Returns:
            Tuple of (log_lines, new_index)
        """
        with self.log_lock:
            first_available = self.log_total - len(self.debug_log)
            start = max(from_index, first_available) - first_available
            return list(self.debug_log)[start:], self.log_total

    # =========================================================
    # DISCOVERY
    # =========================================================
    def discover(self, selector: str = DEFAULT_LINK_SELECTOR) -> List[str]:
        """
        Fetch the listing page and extract document links in page order.

        Args:
            selector: CSS selector for the document anchors

        Returns:
            Absolute URLs, or an empty list if the page could not be fetched
        """
        self._log(f"Fetching listing: {self.listing_url}", "info")

        try:
            response = self.session.get(self.listing_url, timeout=CONNECTION_TIMEOUT)
            if response.status_code != 200:
                raise DownloadError(f"HTTP {response.status_code}")
            html = response.text
        except (requests.RequestException, DownloadError) as e:
            self._log(f"Listing fetch failed: {e}", "error")
            return []

        soup = BeautifulSoup(html, "html.parser")
        links = []
        for anchor in soup.select(selector):
            href = (anchor.get("href") or "").strip()
            if href:
                links.append(urljoin(self.listing_url, href))

        self._log(f"Found {len(links)} documents", "success")
        return links

    # =========================================================
    # SIZE ESTIMATION
    # =========================================================
    def estimate_total_size(self, locators: Iterable[str]) -> SizeEstimate:
        """
        Sum the Content-Length of every locator with sequential HEAD requests.

        Args:
            locators: Resource URLs

        Returns:
            SizeEstimate with the byte total and per-request counts
        """
        locators = list(locators)
        estimate = SizeEstimate()
        self._log("Estimating file sizes...", "info")

        for i, url in enumerate(locators, start=1):
            try:
                response = self.session.head(url, allow_redirects=True,
                                             timeout=CONNECTION_TIMEOUT)
                if response.status_code >= 400:
                    raise DownloadError(f"HTTP {response.status_code}")
            except (requests.RequestException, DownloadError) as e:
                estimate.failed += 1
                self._log(f"Couldn't fetch size for: {url} ({e})", "warning")
                continue

            try:
                size = int(response.headers.get('Content-Length', 0) or 0)
            except ValueError:
                size = 0
            estimate.total_bytes += size
            estimate.counted += 1
            self._log(f"[{i}/{len(locators)}] {size / 1e6:.2f} MB", "info")

        self._log(f"Estimated Total Data Size: {estimate.total_megabytes:.2f} MB", "success")
        return estimate

    # =========================================================
    # DOWNLOAD
    # =========================================================
    def run(self, locators: Iterable[str]) -> RunSummary:
        """
        Download every locator not already on disk and record its checksum.

        Args:
            locators: Resource URLs in listing order

        Returns:
            RunSummary with downloaded / skipped / failed counts
        """
        locators = list(locators)
        summary = RunSummary()

        if not locators:
            self._log("No documents to download", "error")
            return summary

        checksums = ChecksumStore.load(self.checksum_path)
        manifest = Manifest(self.manifest_path)
        self._log(f"Loaded {len(checksums)} existing checksums", "info")
        self._log(f"Starting download: {len(locators)} documents, "
                  f"{self.concurrency} at a time", "info")

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for start in range(0, len(locators), self.concurrency):
                group = locators[start:start + self.concurrency]
                futures = [
                    executor.submit(self._download_worker, url, start + offset + 1,
                                    checksums, manifest)
                    for offset, url in enumerate(group)
                ]
                # Group barrier: nothing from the next group starts before this returns
                wait(futures)

                for future in futures:
                    status, name = future.result()
                    if status == "downloaded":
                        summary.downloaded += 1
                    elif status == "skipped":
                        summary.skipped += 1
                    else:
                        summary.failed += 1
                        summary.failed_names.append(name)

        manifest.save()
        self._log(f"Manifest written: {len(manifest)} records", "info")

        if summary.failed:
            self._log(f"Download finished: {summary.downloaded} downloaded, "
                      f"{summary.skipped} skipped, {summary.failed} failed", "warning")
        else:
            self._log(f"All documents downloaded and checksums saved "
                      f"({summary.downloaded} downloaded, {summary.skipped} skipped)", "success")
        return summary

    def _download_worker(self, url: str, index: int, checksums: ChecksumStore,
                         manifest: Manifest) -> Tuple[str, str]:
        """
        Run one download, converting any failure into a "failed" outcome.

        Returns:
            Tuple of (status, name) with status downloaded / skipped / failed
        """
        name = url
        try:
            name = resource_name(url)
            return self._download_file(url, index, name, checksums, manifest), name
        except Exception as e:
            self._log(f"✗ Failed: {name} - {e}", "error")
            return "failed", name

    def _download_file(self, url: str, index: int, name: str,
                       checksums: ChecksumStore, manifest: Manifest) -> str:
        """
        Download a single file with checksum bookkeeping.

        The body goes to <name>.part; the checksum is stored before the
        rename, so a final file never exists without its checksum. If the
        rename fails the checksum is withdrawn again.

        Args:
            url: Resource URL
            index: 1-based position in the listing
            name: Resource file name
            checksums: Shared checksum store
            manifest: This run's manifest

        Returns:
            "downloaded" or "skipped"
        """
        folder = assign_partition(self.output_dir, index)
        final_path = folder / name
        part_path = Path(str(final_path) + PART_SUFFIX)

        if final_path.exists():
            self._log(f"[SKIP] {name} already exists.", "info")
            return "skipped"

        self._log(f"[{index}] Downloading: {name}", "info")

        recorded = False
        previous = None
        try:
            with self.session.get(url, stream=True, timeout=CONNECTION_TIMEOUT) as response:
                if response.status_code != 200:
                    raise DownloadError(f"HTTP {response.status_code}")

                with open(part_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)

            digest = hash_file(part_path, self.hash_algorithm)
            size = part_path.stat().st_size
            previous = checksums.record(name, digest)
            recorded = True

            # Atomic Safe-Swap
            os.replace(str(part_path), str(final_path))
        except Exception:
            part_path.unlink(missing_ok=True)
            # A failed resource keeps no checksum from this attempt
            if recorded:
                checksums.discard(name, previous)
            raise

        manifest.append(ManifestRecord(file_name=name, url=url, size=size,
                                       checksum=digest, index=index))
        self._log(f"✓ Downloaded: {name}", "success")
        return "downloaded"

    # =========================================================
    # VERIFICATION
    # =========================================================
    def _locate(self, name: str, partitions: List[Path]) -> Optional[Path]:
        for folder in partitions:
            candidate = folder / name
            if candidate.is_file():
                return candidate
        return None

    def verify(self) -> VerifyReport:
        """
        Re-hash every file in the checksum store and compare.

        Returns:
            VerifyReport listing ok, corrupted and missing files
        """
        if not self.checksum_path.exists():
            self._log("No checksums found. Run a download first.", "error")
            return VerifyReport(checksums_present=False)

        checksums = ChecksumStore.load(self.checksum_path)
        partitions = list_partitions(self.output_dir)
        report = VerifyReport()

        self._log("Verifying file integrity...", "info")

        for name, expected in checksums.items():
            file_path = self._locate(name, partitions)

            if file_path is None:
                self._log(f"Missing file: {name}", "warning")
                report.missing.append(name)
                report.problems.append(name)
                continue

            try:
                actual = hash_file(file_path, self.hash_algorithm)
            except OSError as e:
                self._log(f"[UNREADABLE] {name} - {e}", "error")
                actual = None

            if actual is None or actual.lower() != expected.lower():
                self._log(f"[CORRUPTED] {name}", "error")
                report.corrupted.append(name)
                report.problems.append(name)
            else:
                self._log(f"[OK] {name}", "success")
                report.ok.append(name)

        self._log("Verification Complete!", "info")
        if report.problems:
            self._log(f"{len(report.problems)} problems found "
                      f"({len(report.corrupted)} corrupted, {len(report.missing)} missing)",
                      "warning")
        else:
            self._log("All files are intact!", "success")
        return report
