"""
Core image handlers: nhận RequestContext + buffer, trả về buffer mới
"""

import logging
from typing import Protocol

from .core import ImageProcessor
from .errors import ValidationError
from .models import PARAMS_BY_TYPE, OperationType, PipelineStep, RequestContext

logger = logging.getLogger(__name__)


class ImageHandler(Protocol):
    """Contract chung cho core handlers và các stage bọc ngoài"""

    async def handle(self, context: RequestContext, buffer: bytes) -> bytes:
        ...


class OperationHandler:
    """Apply một operation với params đã validate trong context"""

    def __init__(self, processor: ImageProcessor, operation_type: OperationType):
        self.processor = processor
        self.operation_type = OperationType(operation_type)

    async def handle(self, context: RequestContext, buffer: bytes) -> bytes:
        expected = PARAMS_BY_TYPE[self.operation_type]
        if not isinstance(context.params, expected):
            raise ValidationError(
                f"{self.operation_type.value} requires {expected.__name__} parameters",
                field="params",
            )
        step = PipelineStep(type=self.operation_type, params=context.params)
        return await self.processor.apply(buffer, step)


class PipelineHandler:
    """Chạy một chuỗi steps (pipeline) trên ảnh"""

    def __init__(self, processor: ImageProcessor):
        self.processor = processor

    async def handle(self, context: RequestContext, buffer: bytes) -> bytes:
        steps = context.params
        if not isinstance(steps, (list, tuple)) or not steps:
            raise ValidationError("Pipeline requires a non-empty operations array", field="operations")
        if not all(isinstance(step, PipelineStep) for step in steps):
            raise ValidationError("Pipeline operations must be validated steps", field="operations")
        return await self.processor.run_pipeline(buffer, steps)
