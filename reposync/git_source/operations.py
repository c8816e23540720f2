"""Retry logic for network-bound git and download operations."""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from ..config import Config

T = TypeVar("T")


def execute_with_retry(
    operation_func: Callable[[], T],
    operation: str,
    config: Config,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Execute an operation with retry logic and exponential backoff.

    The last failure is re-raised once `config.git_retry_attempts` attempts
    have been made. Exceptions outside `retry_on` propagate immediately.

    Args:
        operation_func: Callable performing the operation
        operation: Description of the operation for logging
        config: Configuration providing retry attempts and base delay
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function (injectable for tests)

    Returns:
        The return value of operation_func
    """
    logger = logging.getLogger('reposync.git_source.operations')

    max_attempts = config.git_retry_attempts
    base_delay = config.git_retry_delay

    attempt = 1
    while True:
        try:
            logger.debug(f"Executing {operation} (attempt {attempt}/{max_attempts})")
            return operation_func()
        except retry_on as e:
            if attempt >= max_attempts:
                logger.error(f"{operation} failed after {attempt} attempt(s): {e}")
                raise

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{operation} failed (attempt {attempt}/{max_attempts}): {e}, retrying in {delay:.1f}s")
            sleep(delay)
            attempt += 1
