"""Bearer token loading."""

from pathlib import Path

import structlog

from webtest.load.errors import TokenFileError

logger = structlog.get_logger()

DEFAULT_TOKEN_FILE = ".token"


def read_token_file(path: str | Path) -> str:
    """Read a bearer token from *path*, stripping surrounding whitespace."""
    token_path = Path(path)
    try:
        token = token_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError as exc:
        raise TokenFileError(f"Token file not found: {token_path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise TokenFileError(f"Could not read token file {token_path}: {exc}") from exc
    if not token:
        raise TokenFileError(f"Token file is empty: {token_path}")
    logger.debug("token_loaded", path=str(token_path))
    return token


def resolve_token(
    token: str | None = None,
    token_file: str | None = None,
    default_file: str | Path = DEFAULT_TOKEN_FILE,
) -> str | None:
    """Pick the bearer token for a run.

    An explicit *token* wins. An explicit *token_file* must be readable.
    Otherwise *default_file* is used when it exists, and the run goes out
    unauthenticated when it does not.
    """
    if token:
        return token
    if token_file:
        return read_token_file(token_file)
    if Path(default_file).is_file():
        return read_token_file(default_file)
    return None
