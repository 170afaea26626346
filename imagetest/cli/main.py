"""CLI entry point for imagetest."""

from __future__ import annotations

import logging
import os
import sys

import fire
from docker import errors as docker_errors
from omegaconf.errors import OmegaConfBaseException

from imagetest.constants import DEBUG_ENV_VAR, EXIT_CONFIG_ERROR, EXIT_ERROR
from imagetest.exceptions import HarnessNotFoundError, ImagetestError
from imagetest.logging import StreamFormatter, StreamRoutingFilter
from imagetest.utils import log_and_print_error


def get_imagetest_class() -> type:
    """Get Imagetest class on-demand to avoid circular imports.

    Returns
    -------
    type
        Imagetest class
    """
    from imagetest.__main__ import Imagetest

    return Imagetest


def handle_config_error(error: Exception, debug_mode: bool) -> None:
    """Handle a configuration error.

    Parameters
    ----------
    error : Exception
        The configuration error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    Exception
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Configuration error: {error}", file=sys.stderr)
    sys.exit(EXIT_CONFIG_ERROR)


def handle_docker_error(error: docker_errors.DockerException, debug_mode: bool) -> None:
    """Handle Docker connectivity error.

    Parameters
    ----------
    error : docker.errors.DockerException
        The Docker error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    docker.errors.DockerException
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Docker error: {error}\n", file=sys.stderr)
    print("This usually means:", file=sys.stderr)
    print("  - The Docker daemon is not running", file=sys.stderr)
    print("  - DOCKER_HOST points to an unreachable daemon", file=sys.stderr)
    print("  - The current user cannot access the Docker socket", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_imagetest_error(error: ImagetestError, debug_mode: bool) -> None:
    """Handle an unexpected imagetest error.

    Parameters
    ----------
    error : ImagetestError
        The error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ImagetestError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    log_and_print_error("%s", error)
    sys.exit(EXIT_ERROR)


def configure_logging(debug_mode: bool) -> None:
    """Route tagged sandbox output to stdout and everything else to stderr."""
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(StreamFormatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(StreamFormatter("%(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(
        level=logging.DEBUG if debug_mode else logging.INFO,
        handlers=[stdout_handler, stderr_handler],
    )


def main() -> None:
    """Entry point for Fire CLI with graceful error handling.

    Fire maps the public methods of ``Imagetest`` (``plan``, ``apply`` and
    ``inventory``) to commands.
    """
    debug_mode = os.environ.get(DEBUG_ENV_VAR) == "1"
    configure_logging(debug_mode)

    Imagetest = get_imagetest_class()

    try:
        fire.Fire(Imagetest())
    except HarnessNotFoundError as e:
        handle_config_error(e, debug_mode)
    except (ValueError, OmegaConfBaseException) as e:
        handle_config_error(e, debug_mode)
    except docker_errors.DockerException as e:
        handle_docker_error(e, debug_mode)
    except ImagetestError as e:
        handle_imagetest_error(e, debug_mode)
    except RuntimeError as e:
        handle_config_error(e, debug_mode)
