"""
Lifecycle Hooks

Registry binding one handler per watched kind. Dispatch converts the raw
object to the kind's model once, calls the handler method for the event and
retries failures with bounded exponential backoff.
"""

import logging
import time
from typing import Any, Callable, Dict, NamedTuple

from ..core.constants import LifecycleEvent, NetworkConstants
from ..core.exceptions import CycleError, InvariantError, StoreError
from ..core.models import MODEL_BY_KIND
from ..core.protocols import LifecycleHandler

logger = logging.getLogger(__name__)


class Registration(NamedTuple):
    """A handler bound to a kind under a hook name"""
    name: str
    handler: LifecycleHandler


class LifecycleRegistry:
    """Binds coordinators to kinds and delivers lifecycle events to them"""

    def __init__(self, max_retries: int = NetworkConstants.DEFAULT_MAX_RETRIES,
                 backoff_seconds: float = NetworkConstants.DEFAULT_BACKOFF_SECONDS,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the registry

        Args:
            max_retries: Retries after the first failed attempt
            backoff_seconds: Delay before the first retry, doubled per retry
            sleep: Sleep function, replaceable in tests
        """
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._registrations: Dict[str, Registration] = {}

    def register(self, kind: str, name: str, handler: LifecycleHandler) -> None:
        """
        Bind a handler to a kind

        Raises:
            InvariantError: If the kind has no model type or already has a handler
        """
        if kind not in MODEL_BY_KIND:
            raise InvariantError(f"No model type for kind {kind}, cannot register {name}")
        if kind in self._registrations:
            existing = self._registrations[kind].name
            raise InvariantError(f"Kind {kind} already has handler {existing}, cannot register {name}")
        self._registrations[kind] = Registration(name, handler)
        logger.debug(f"Registered lifecycle handler {name} for {kind}")

    def kinds(self):
        return list(self._registrations)

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)"""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), NetworkConstants.MAX_BACKOFF_SECONDS)

    def dispatch(self, kind: str, event: str, obj: Dict[str, Any]) -> bool:
        """
        Deliver one lifecycle event to the handler of its kind

        Args:
            kind: Resource kind of the object
            event: LifecycleEvent value (create, updated, remove)
            obj: Raw Kubernetes-shaped object

        Returns:
            True if the handler succeeded, False if no handler is registered or
            every attempt failed

        Raises:
            InvariantError: On a malformed object or an index misuse; never retried
        """
        registration = self._registrations.get(kind)
        if registration is None:
            logger.debug(f"No lifecycle handler for {kind}, skipping {event}")
            return False

        event = LifecycleEvent(event)
        try:
            model = MODEL_BY_KIND[kind].from_object(obj)
        except InvariantError as e:
            logger.critical(f"Handler {registration.name} received a malformed {kind} object: {e}")
            raise
        method = getattr(registration.handler, event.value)
        label = f"{registration.name} {event.value} {kind} {model.name}"

        attempt = 0
        while True:
            try:
                method(model)
                logger.debug(f"Handled {label}")
                return True
            except InvariantError as e:
                logger.critical(f"Invariant violated in {label}: {e}")
                raise
            except CycleError as e:
                # the template graph has to change before a retry can succeed
                logger.error(f"Failed {label}: {e}")
                return False
            except StoreError as e:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(f"Failed {label} after {attempt} attempt(s): {e}")
                    return False
                delay = self.backoff(attempt)
                logger.warning(f"Failed {label}, retrying in {delay:.1f}s "
                               f"({attempt}/{self.max_retries}): {e}")
                self._sleep(delay)
