# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Load the Azure app's secrets from a ``.env`` file.

The client secret is normally kept out of the YAML config and referenced
with an ``!env`` tag.  The first ``.env`` found is read once per process,
before the config is parsed, and never overrides variables already set in
the environment.
"""

import logging
from collections.abc import Iterator
from pathlib import Path

from dotenv import find_dotenv, load_dotenv


logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent

_attempted = False


def _candidates(env_path: Path | None) -> Iterator[Path]:
    if env_path is not None:
        yield env_path
    yield _PROJECT_ROOT / ".env"
    found = find_dotenv(usecwd=True)
    if found:
        yield Path(found)


def load_dotenv_once(env_path: Path | None = None) -> Path | None:
    """Read the first ``.env`` file found, once per process.

    Search order: *env_path*, the project root, then the working directory
    and its parents.

    Args:
        env_path: File to try before the default locations.

    Returns:
        The file that was read, or None when nothing was found or an
        earlier call already searched.
    """
    global _attempted
    if _attempted:
        return None
    _attempted = True

    for path in _candidates(env_path):
        if path.is_file():
            load_dotenv(path, override=False)
            logger.debug("Loaded environment from %s", path)
            return path
    logger.debug("No .env file found")
    return None


def reset_dotenv_state() -> None:
    """Allow the next ``load_dotenv_once`` call to search again."""
    global _attempted
    _attempted = False
