class TaskStoreError(Exception):
    """Base class for task store errors"""


class TaskNotFoundError(TaskStoreError):
    """A lookup matched zero rows. ``key`` is the id, tag or date queried."""

    def __init__(self, key, what: str = "task"):
        self.key = key
        self.what = what
        super().__init__(f"{what} {key!r} not found")


class StorageError(TaskStoreError):
    """The database engine failed or a stored row could not be decoded."""
