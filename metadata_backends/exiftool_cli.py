"""
Metadata backend: ExifTool command line
Writes XMP/IPTC tags by running the `exiftool` binary on a file in place.
Requires exiftool on PATH (or EXIFTOOL_PATH pointing at it).
"""
import logging
import shutil
import subprocess

from service_config import SERVICE_CONFIG

logger = logging.getLogger(__name__)

# -m: ignore minor warnings; IPTC text as UTF-8 with the matching
# CodedCharacterSet marker so readers decode it the same way
_BASE_ARGS = ["-overwrite_original", "-charset", "iptc=UTF8", "-codedcharacterset=utf8", "-m"]


def _executable() -> str | None:
    return shutil.which(SERVICE_CONFIG["exiftool_path"])


def available() -> bool:
    return _executable() is not None


def build_args(path: str, tags: dict) -> list[str]:
    args = list(_BASE_ARGS)
    for tag, value in tags.items():
        if value is None or (isinstance(value, (str, list)) and not value):
            continue
        # List tags (Subject, Keywords) take one assignment per item
        if isinstance(value, list):
            args.extend(f"-{tag}={item}" for item in value)
        else:
            args.append(f"-{tag}={value}")
    args.append(path)
    return args


def write(path: str, tags: dict, timeout: float) -> None:
    """Write tags into the file at path. Raises on a missing tool, timeout or error exit."""
    executable = _executable()
    if executable is None:
        raise RuntimeError("exiftool is not installed")

    process = subprocess.run(
        [executable, *build_args(path, tags)],
        capture_output=True,
        text=True,
        encoding="utf-8",
        timeout=timeout,
        check=False,
    )
    if process.returncode != 0:
        raise RuntimeError(
            f"exiftool exited with code {process.returncode}: {process.stderr.strip()[:200]}"
        )
    logger.debug("exiftool: %s", process.stdout.strip())


def read_back(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
