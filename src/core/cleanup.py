"""
Best-effort release of modeling service resources.
"""

import structlog

from .errors import CleanupFailure
from .service import ModelingService

logger = structlog.get_logger(__name__)


def safe_delete(service: ModelingService, resource_id: str | None) -> bool:
    """Delete a resource, logging instead of raising on failure

    Returns:
        True if the resource is gone, False if the delete call failed
    """
    if resource_id is None:
        return True

    try:
        deleted = service.delete(resource_id)
    except Exception as e:
        failure = CleanupFailure(f"Failed to delete {resource_id}", resource_id=resource_id)
        logger.warning(str(failure), error=str(e), code=failure.code)
        return False

    if not deleted:
        logger.warning("Delete reported failure", resource_id=resource_id)
    else:
        logger.debug("Resource deleted", resource_id=resource_id)
    return bool(deleted)


class ResourceTracker:
    """Records every handle a loop creates so none leaks on abort

    Used as a context manager: when the block exits with an exception
    (KeyboardInterrupt included), every handle still tracked is deleted before
    the exception propagates. Handles returned to the caller must be kept
    with keep() so they survive normal exit and are never torn down.
    """

    def __init__(self, service: ModelingService, teardown_on_error: bool = True):
        self.service = service
        self.teardown_on_error = teardown_on_error
        self._tracked: list[str] = []
        self._kept: set[str] = set()

    @property
    def tracked(self) -> list[str]:
        return list(self._tracked)

    def track(self, resource_id: str | None) -> str | None:
        if resource_id is not None and resource_id not in self._tracked:
            self._tracked.append(resource_id)
        return resource_id

    def keep(self, resource_id: str) -> None:
        """Mark a handle as part of the final output"""
        self._kept.add(resource_id)

    def release(self, resource_id: str | None) -> bool:
        """Delete a handle now and stop tracking it"""
        if resource_id is None:
            return True
        if resource_id in self._tracked:
            self._tracked.remove(resource_id)
        self._kept.discard(resource_id)
        return safe_delete(self.service, resource_id)

    def release_all(self, keep: tuple[str, ...] = ()) -> int:
        """Delete every tracked handle except kept ones

        Returns:
            Number of handles successfully deleted
        """
        released = 0
        for resource_id in list(self._tracked):
            if resource_id in keep or resource_id in self._kept:
                continue
            if self.release(resource_id):
                released += 1
        return released

    def __enter__(self) -> "ResourceTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self.teardown_on_error and self._tracked:
            logger.warning(
                "Aborted, releasing tracked resources",
                error=str(exc) if exc else exc_type.__name__,
                resources=len(self._tracked),
            )
            # kept handles are never returned once the block fails
            self._kept.clear()
            self.release_all()
        return False
