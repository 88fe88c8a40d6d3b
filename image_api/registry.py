"""
Operation registry: operation tag -> ImageOperation

Fixed table built at construction; read-only afterwards.
"""

from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Union

from .config import ImageApiConfig
from .errors import UnknownOperationError
from .models import OperationType
from .operations import ImageOperation, default_operations


class OperationRegistry:
    """Resolve operation tags to their executors"""

    def __init__(self, operations: Mapping[Union[str, OperationType], ImageOperation]):
        table = {}
        for tag, operation in operations.items():
            table[OperationType(tag)] = operation
        self._operations = MappingProxyType(table)

    @classmethod
    def default(cls, config: Optional[ImageApiConfig] = None) -> "OperationRegistry":
        return cls(default_operations(config))

    def resolve(self, tag: Union[str, OperationType]) -> ImageOperation:
        """
        Lấy operation theo tag

        Raises:
            UnknownOperationError: If the tag is not registered
        """
        try:
            return self._operations[OperationType(tag)]
        except (ValueError, KeyError):
            raise UnknownOperationError(getattr(tag, "value", tag))

    def __contains__(self, tag) -> bool:
        try:
            return OperationType(tag) in self._operations
        except ValueError:
            return False

    def __iter__(self) -> Iterator[OperationType]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)
