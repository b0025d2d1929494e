from typing import Sequence


class TrackerError(Exception):
    """Base class for recoverable tracker errors."""


class ValidationError(TrackerError):
    def __init__(self, messages: Sequence[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


class IndexOutOfRange(TrackerError):
    def __init__(self, kind: str, index: int, size: int):
        self.kind = kind
        self.index = index
        self.size = size
        super().__init__(f"No {kind} at index {index} (collection has {size})")


class DuplicateCategory(TrackerError):
    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Un budget existe déjà pour la catégorie {category}")


class StorageFailure(TrackerError):
    pass


class ImportFormatError(TrackerError):
    pass
