"""
Core Utilities

Common utility functions used across the authz-sync engine.
"""

import logging
import re
import sys
from typing import Optional
from urllib.parse import urlparse

from .exceptions import (
    ConfigurationError, StoreError, NotFoundError, ConflictError, AlreadyExistsError
)
from .constants import ErrorMessages, NetworkConstants


def setup_logging(debug: bool = False) -> None:
    """
    Set up logging configuration for the application.
    Separates WARNING/INFO to stdout and ERROR to stderr.

    Args:
        debug: Enable debug logging level
    """
    level = logging.DEBUG if debug else logging.INFO

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Create stdout handler for INFO, WARNING, DEBUG
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(lambda record: record.levelno < logging.ERROR)

    # Create stderr handler for ERROR and CRITICAL only
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)

    if debug:
        logger = logging.getLogger(__name__)
        logger.debug("Debug mode enabled")


def mask_sensitive_info(text: str, url: Optional[str] = None, token: Optional[str] = None) -> str:
    """
    Mask sensitive information in text for logging and debug output.

    Args:
        text: Text to mask
        url: URL to mask (optional)
        token: Token to mask (optional)

    Returns:
        Text with sensitive information masked
    """
    if not text:
        return text

    masked_text = text

    if token and token in masked_text:
        if '~' in token:
            prefix = token.split('~')[0] + '~'
            masked_token = prefix + "***MASKED***"
        else:
            masked_token = "***MASKED***"
        masked_text = masked_text.replace(token, masked_token)

    if url and url in masked_text:
        parsed = urlparse(url)
        if parsed.hostname:
            hostname_parts = parsed.hostname.split('.')
            if len(hostname_parts) >= 3:
                first_part = hostname_parts[0][:3]
                masked_hostname = f"{first_part}.****.{hostname_parts[-1]}"
            elif len(hostname_parts) == 2:
                masked_hostname = f"****.{hostname_parts[-1]}"
            else:
                masked_hostname = "****"
            masked_text = masked_text.replace(url, f"{parsed.scheme}://{masked_hostname}:***")
        else:
            masked_text = masked_text.replace(url, "https://****:***")

    # Mask bearer tokens
    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_-]+', 'Bearer ***MASKED***', masked_text)

    # Mask OpenShift/Rancher style tokens
    masked_text = re.sub(r'sha256~[A-Za-z0-9_-]+', 'sha256~***MASKED***', masked_text)

    return masked_text


class ValidationConfig:
    """
    Configuration-driven validation patterns.

    Centralizes validation patterns, error messages, and constraints.
    """

    CLUSTER_URL = {
        'pattern': r'^https?:\/\/[a-zA-Z0-9.-]+(?:\:[0-9]+)?(?:\/.*)?$',
        'error': ErrorMessages.ConfigError.INVALID_URL,
        'name': 'URL'
    }


def _validate_with_config(value: str, config: dict) -> bool:
    """
    Validate a value against a ValidationConfig entry.

    Raises:
        ConfigurationError: If validation fails
    """
    if not value or not isinstance(value, str):
        raise ConfigurationError(f"{config['name']} cannot be empty")

    if not re.match(config['pattern'], value):
        raise ConfigurationError(str(config['error']).format(**{config['name'].lower(): value}))

    return True


def validate_cluster_url(url: str) -> bool:
    """
    Validate if the provided string is a valid cluster API URL.

    Raises:
        ConfigurationError: If URL is invalid
    """
    return _validate_with_config(url, ValidationConfig.CLUSTER_URL)


def format_scope(namespace: Optional[str]) -> str:
    """Render a namespace for log and error messages (empty for cluster scope)"""
    return f" in namespace {namespace}" if namespace else ""


def handle_api_error(
    error: Exception,
    operation: str,
    kind: str,
    name: str = "",
    namespace: Optional[str] = None,
    timeout: Optional[float] = None
) -> None:
    """
    Translate an exception raised by the cluster API into the store error taxonomy.

    The API status code decides the exception class: 404 becomes NotFoundError,
    409 becomes AlreadyExistsError for creates and ConflictError otherwise.
    Timeouts and every other failure become a retryable StoreError carrying the
    object kind, name and scope.

    Args:
        error: The caught exception to analyze
        operation: Store operation that failed (get, list, create, update, delete)
        kind: Resource kind of the object
        name: Object name (empty for list)
        namespace: Object namespace (None for cluster scope)
        timeout: Request timeout that was in effect, for timeout messages

    Raises:
        StoreError: Always, as the most specific subclass that applies
    """
    status = getattr(error, 'status', None)
    scope = format_scope(namespace)
    context = {'kind': kind, 'name': name, 'namespace': namespace}

    if status == NetworkConstants.NOT_FOUND:
        raise NotFoundError(f"{kind} {name}{scope} not found", **context) from error

    if status == NetworkConstants.CONFLICT:
        if operation == "create":
            raise AlreadyExistsError(f"{kind} {name}{scope} already exists", **context) from error
        raise ConflictError(f"{kind} {name}{scope} was modified concurrently", **context) from error

    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        message = str(ErrorMessages.StoreError.TIMEOUT).format(
            timeout=timeout, operation=operation, kind=kind, name=name, scope=scope
        )
        raise StoreError(message, **context) from error

    if status in (401, 403):
        auth_message = (ErrorMessages.AuthError.TOKEN_EXPIRED if status == 401
                        else ErrorMessages.AuthError.INSUFFICIENT_PERMISSIONS)
        raise StoreError(f"{operation} {kind} {name}{scope}: {auth_message}", **context) from error

    templates = {
        'get': ErrorMessages.StoreError.GET_FAILED,
        'list': ErrorMessages.StoreError.LIST_FAILED,
        'create': ErrorMessages.StoreError.CREATE_FAILED,
        'update': ErrorMessages.StoreError.UPDATE_FAILED,
        'delete': ErrorMessages.StoreError.DELETE_FAILED
    }
    template = templates.get(operation, ErrorMessages.StoreError.GET_FAILED)
    raise StoreError(
        str(template).format(kind=kind, name=name, scope=scope, error=error), **context
    ) from error
