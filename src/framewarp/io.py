"""Host-side I/O helpers: logging setup, local byte fetch and atomic result writes.

The engine itself never touches the filesystem; these are the collaborators a
host plugs around it.
"""

import logging
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from shutil import move

from .pipeline import TransformResult

EXTENSIONS = {
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}


def setup_logging(log_dir: Path | None = None, log_level: str = "INFO") -> logging.Logger:
    """Set up logging configuration for FrameWarp.

    Args:
        log_dir: Directory to store log files, None for console only
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        handlers.append(logging.FileHandler(log_dir / f"framewarp_{timestamp}.log"))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    return logging.getLogger("framewarp")


@contextmanager
def atomic_write(target_path: Path, mode: str = "wb"):
    """Context manager for atomic file writes using temporary files.

    Args:
        target_path: Final path where file should be written
        mode: File open mode

    Yields:
        File handle for writing

    Example:
        with atomic_write(Path("out.gif")) as f:
            f.write(result.buffer)
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode=mode,
        dir=target_path.parent,
        delete=False,
        suffix=f".tmp_{target_path.name}",
    ) as temp_file:
        try:
            yield temp_file
            temp_file.flush()
            move(temp_file.name, target_path)
        except Exception:
            Path(temp_file.name).unlink(missing_ok=True)
            raise


def load_image_bytes(path: Path | str) -> bytes:
    """Read an image file for the pipeline.

    Raises:
        IOError: If the file does not exist or cannot be read
    """
    path = Path(path)
    if not path.is_file():
        raise OSError(f"Input file not found: {path}")
    return path.read_bytes()


def save_result(result: TransformResult, path: Path | str) -> Path:
    """Atomically write a pipeline result to ``path``.

    A path without a suffix gets the extension matching the result's
    content type.

    Returns:
        The path that was written
    """
    path = Path(path)
    if not path.suffix:
        path = path.with_suffix(EXTENSIONS.get(result.content_type, ".bin"))

    with atomic_write(path) as f:
        f.write(result.buffer)

    return path
