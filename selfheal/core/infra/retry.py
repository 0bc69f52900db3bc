"""Retry strategies for corrective remediation actions."""

import logging as stdlib_logging
from typing import Tuple, Type, Union

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from selfheal.constants import RemediationConfig

# Stdlib logger needed for tenacity's before_sleep_log
_stdlib_logger = stdlib_logging.getLogger(__name__)

TRANSIENT_NETWORK_ERRORS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
)


def get_network_retry(
    attempts: int = RemediationConfig.NETWORK_RETRY_ATTEMPTS,
    min_wait: float = RemediationConfig.NETWORK_BACKOFF_MIN_SECONDS,
    max_wait: float = RemediationConfig.NETWORK_BACKOFF_MAX_SECONDS,
    exception_types: Union[Type[Exception], Tuple[Type[Exception], ...]] = TRANSIENT_NETWORK_ERRORS,
) -> AsyncRetrying:
    """
    Get retry controller for transient network failures.

    Args:
        attempts: Maximum number of attempts
        min_wait: Lower bound of the exponential wait in seconds
        max_wait: Upper bound of the exponential wait in seconds
        exception_types: Exception type(s) to retry on

    Returns:
        AsyncRetrying configured for network errors
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exception_types),
        before_sleep=before_sleep_log(_stdlib_logger, stdlib_logging.WARNING),
        reraise=True,
    )
