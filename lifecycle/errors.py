from typing import Optional


class LifecycleError(Exception):
    """Base class for failures inside the thread lifecycle and purge code."""


class TransportUnavailable(LifecycleError):
    """The gateway connection is down; the whole unit of work is skipped."""


class ContainerAccessError(LifecycleError):
    """A guild, forum, channel or thread could not be found or is forbidden."""

    def __init__(self, container_id: Optional[int], reason: str):
        super().__init__(f"Container {container_id}: {reason}")
        self.container_id = container_id
        self.reason = reason


class PageFetchError(LifecycleError):
    """A history page could not be fetched. Aborts the scan of that container only."""

    def __init__(self, container_id: int, before_message_id: Optional[int], cause: Exception):
        super().__init__(f"Failed to fetch history of {container_id} before {before_message_id}: {cause}")
        self.container_id = container_id
        self.before_message_id = before_message_id
        self.cause = cause


class MutationError(LifecycleError):
    """A tag update, lock, archive, send or delete request failed."""

    def __init__(self, action: str, target_id: int, cause: Exception):
        super().__init__(f"{action} failed for {target_id}: {cause}")
        self.action = action
        self.target_id = target_id
        self.cause = cause
