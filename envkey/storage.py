"""
Atomic Persistence Layer — read and write the ``.envkey`` document.

Writes go to a temporary file in the target's directory which is then
renamed over the target with ``os.replace``. A reader sees either the old
complete document or the new complete document, never a partial one.

There is no file locking: two concurrent writers cannot tear a document,
but the last one to rename wins and the other's update is lost.
"""
import os
import logging
import tempfile
from pathlib import Path

import yaml
from pydantic import ValidationError

from .model import EnvkeyFile
from .exceptions import DocumentNotFoundError, DocumentSyntaxError

logger = logging.getLogger("envkey.storage")

ENVKEY_FILENAME = ".envkey"


def envkey_path(directory: Path) -> Path:
    """Location of the vault document for a project directory."""
    return Path(directory) / ENVKEY_FILENAME


def loads_envkey(text: str) -> EnvkeyFile:
    """Parse document text.

    Raises:
        DocumentSyntaxError: Not YAML, not a mapping, or schema mismatch.
        UnsupportedVersionError: Version guard failed; raised before team or
            environments are looked at.
    """
    try:
        raw = yaml.safe_load(text)
    except (yaml.YAMLError, ValueError) as err:
        # out-of-range timestamps surface as ValueError
        raise DocumentSyntaxError(f"invalid .envkey YAML: {err}") from err
    if not isinstance(raw, dict):
        raise DocumentSyntaxError("invalid .envkey YAML: expected a mapping at the top level")
    if "version" not in raw:
        raise DocumentSyntaxError("invalid .envkey YAML: missing `version`")
    try:
        return EnvkeyFile.from_raw(raw)
    except ValidationError as err:
        raise DocumentSyntaxError(
            f"invalid .envkey YAML: {err.error_count()} schema error(s): "
            f"{_first_error(err)}"
        ) from err


def _first_error(err: ValidationError) -> str:
    first = err.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}"


def read_envkey(path: Path) -> EnvkeyFile:
    """Read and validate the document at ``path``.

    Raises:
        DocumentNotFoundError: If there is no file at ``path``.
        DocumentSyntaxError: If the file is not a valid document.
        UnsupportedVersionError: If the file has an unsupported version.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as err:
        raise DocumentNotFoundError(
            f"missing {ENVKEY_FILENAME} in {path.parent}; run `envkey init` first"
        ) from err
    except UnicodeDecodeError as err:
        raise DocumentSyntaxError(f"invalid .envkey YAML: {err}") from err
    document = loads_envkey(text)
    logger.debug("Read %s: %d member(s)", path, len(document.team))
    return document


def dump_envkey(document: EnvkeyFile) -> str:
    """Serialize deterministically: same document, same bytes."""
    return yaml.safe_dump(
        document.to_document(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def write_envkey_atomic(path: Path, document: EnvkeyFile) -> None:
    """Write the document so that ``path`` is replaced all at once.

    Args:
        path: Target document path.
        document: Document to persist.
    """
    path = Path(path)
    content = dump_envkey(document).encode("utf-8")
    directory = path.parent
    fd, tmp = tempfile.mkstemp(
        dir=directory,
        prefix=f"{ENVKEY_FILENAME}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        if path.exists():
            # mkstemp creates 0o600; keep whatever mode the document had
            os.chmod(tmp, path.stat().st_mode & 0o777)
        else:
            os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    _fsync_directory(directory)
    logger.debug("Wrote %s (%d bytes)", path, len(content))


def _fsync_directory(directory: Path) -> None:
    """Persist the rename itself; not supported on every platform."""
    if os.name != "posix":
        return
    dir_fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    except OSError as err:
        logger.debug("Directory fsync not supported for %s: %s", directory, err)
    finally:
        os.close(dir_fd)
