import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from pdf_workbench.core.types import PdfFileEntry
from pdf_workbench.workspace.history import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)

# Limits and filters
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB
ALLOWED_EXTENSIONS = [".pdf"]
IMAGE_EXTENSIONS = [".png", ".jpg", ".jpeg"]
HISTORY_LIMIT = DEFAULT_HISTORY_LIMIT

# Default search directories (used when no args are provided)
DEFAULT_SEARCH_DIRECTORIES = [
    os.path.expanduser("~/Downloads"),
    os.path.expanduser("~/Desktop"),
    os.path.expanduser("~/Documents"),
    os.getcwd(),
]

# Actual configured directories (initialized at runtime)
SEARCH_DIRECTORIES: List[str] = []


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """Parse CLI arguments: accessible directories, limits and logging."""
    parser = argparse.ArgumentParser(
        description="PDF Workbench MCP Server - annotate, patch, sign, merge and split PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "\nExamples:\n"
            "  python main.py ~/Downloads ~/Documents\n"
            "  python main.py --allow-dir ~/Work --allow-dir /shared/pdfs\n"
            "  python main.py ~/Downloads --history-limit 100 --log-level DEBUG\n"
        ),
    )

    parser.add_argument(
        "directories",
        nargs="*",
        help="Accessible directories for PDFs (space-separated)",
    )
    parser.add_argument(
        "--allow-dir",
        action="append",
        dest="allowed_dirs",
        help="Add an allowed directory (can be used multiple times)",
    )
    parser.add_argument(
        "--max-file-size",
        type=int,
        default=100 * 1024 * 1024,
        help="Maximum input file size in bytes (default: 100MB)",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        default=DEFAULT_HISTORY_LIMIT,
        help=f"Undo/redo entries kept for the workspace (default: {DEFAULT_HISTORY_LIMIT})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def _is_within(base: str, target: str) -> bool:
    base = os.path.join(os.path.realpath(base), "")  # ensure trailing separator
    target = os.path.realpath(target)
    return target.startswith(base) or target == base[:-1]


def _usable_directory(raw: str) -> Optional[str]:
    """Resolve `raw`, creating it if missing. Outputs are written next to
    inputs, so a directory must be both readable and writable."""
    real_path = os.path.realpath(os.path.abspath(os.path.expanduser(raw)))
    if not os.path.exists(real_path):
        try:
            os.makedirs(real_path, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create directory '{raw}': {e}")
            return None
        logger.info(f"Created directory: {real_path}")
    if not os.path.isdir(real_path):
        logger.warning(f"Skipping {raw}: {real_path} is not a directory")
        return None
    if not os.access(real_path, os.R_OK | os.W_OK):
        logger.warning(f"Skipping {raw}: {real_path} needs read and write access")
        return None
    return real_path


def setup_search_directories(args) -> None:
    """Apply parsed args: limits, then the accessible directories.

    Without usable directories the defaults that exist are used instead.
    """
    global MAX_FILE_SIZE, HISTORY_LIMIT

    MAX_FILE_SIZE = int(args.max_file_size)
    HISTORY_LIMIT = max(1, int(getattr(args, "history_limit", DEFAULT_HISTORY_LIMIT)))

    requested = list(getattr(args, "directories", None) or []) + list(getattr(args, "allowed_dirs", None) or [])
    usable = [d for d in map(_usable_directory, requested) if d is not None]
    if not usable:
        if requested:
            logger.warning("None of the requested directories is usable; using defaults.")
        usable = [os.path.realpath(d) for d in DEFAULT_SEARCH_DIRECTORIES if os.path.isdir(d)]

    # other modules hold a reference to this list
    SEARCH_DIRECTORIES[:] = list(dict.fromkeys(usable))


def is_allowed(path: str) -> bool:
    return any(_is_within(allowed, path) for allowed in SEARCH_DIRECTORIES)


def validate_and_resolve_path(file_path: str, extensions: Sequence[str] = tuple(ALLOWED_EXTENSIONS)) -> Optional[Path]:
    """Return the absolute Path of an existing, allowed input file, or None."""
    candidate = Path(os.path.realpath(os.path.abspath(os.path.expanduser(file_path))))
    if ".." in Path(file_path).parts or not is_allowed(str(candidate)):
        logger.warning(f"Rejected path outside accessible directories: {file_path}")
        return None
    if not candidate.is_file():
        return None
    if candidate.suffix.lower() not in extensions:
        logger.warning(f"Rejected {file_path}: extension not in {list(extensions)}")
        return None
    size = candidate.stat().st_size
    if size > MAX_FILE_SIZE:
        logger.warning(f"Rejected {file_path}: {size} bytes exceeds limit of {MAX_FILE_SIZE}")
        return None
    return candidate


def find_file(file_name: str, extensions: Sequence[str] = tuple(ALLOWED_EXTENSIONS)) -> Optional[Path]:
    """Resolve an absolute path, or search by name/substring within the configured directories."""
    if os.path.isabs(file_name) or file_name.startswith("~"):
        return validate_and_resolve_path(file_name, extensions)

    needle = file_name.lower()
    for root in map(Path, SEARCH_DIRECTORIES):
        exact = validate_and_resolve_path(str(root / file_name), extensions)
        if exact:
            return exact
        matches = (p for p in sorted(root.iterdir()) if p.suffix.lower() in extensions and needle in p.name.lower())
        for match in matches:
            resolved = validate_and_resolve_path(str(match), extensions)
            if resolved:
                return resolved

    logger.warning(f"No accessible file matches '{file_name}'")
    return None


def resolve_output_path(file_name: str, next_to: Optional[Path] = None, overwrite: bool = False) -> Path:
    """Where to write a generated PDF.

    Relative names land beside `next_to` (or in the first configured
    directory). The target must be inside an allowed directory and must not
    exist unless `overwrite` is set.
    """
    name = file_name if file_name.lower().endswith(".pdf") else f"{file_name}.pdf"
    if os.path.isabs(name) or name.startswith("~"):
        target = Path(os.path.realpath(os.path.expanduser(name)))
    else:
        if not SEARCH_DIRECTORIES and next_to is None:
            raise ValueError("No accessible directory configured for output")
        base = next_to.parent if next_to is not None else Path(SEARCH_DIRECTORIES[0])
        target = Path(os.path.realpath(base / name))

    if ".." in Path(file_name).parts or not is_allowed(str(target)):
        raise ValueError(f"Output path outside allowed directories: {file_name}")
    if target.exists() and not overwrite:
        raise ValueError(f"Output file already exists: {target}")
    return target


def list_pdf_files(directory: str = "all", limit: int = 50) -> List[PdfFileEntry]:
    """Most recently modified PDFs directly under the matching allowed roots.

    `directory` is "all" or a substring of a root's basename/path.
    """
    limit = max(1, min(int(limit), 200))
    roots = [
        d for d in SEARCH_DIRECTORIES
        if directory == "all" or directory.lower() in os.path.basename(d).lower() or directory in d
    ]
    entries: List[PdfFileEntry] = []
    for root in roots:
        files = [f for f in Path(root).glob("*.pdf") if f.is_file()]
        for pdf in sorted(files, key=lambda f: f.stat().st_mtime, reverse=True)[:limit]:
            entries.append({
                "name": pdf.name,
                "path": str(pdf),
                "size_mb": round(pdf.stat().st_size / 1024 ** 2, 2),
            })
    return entries
