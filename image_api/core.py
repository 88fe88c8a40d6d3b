"""
Core image processing facade
Flow: validate input -> resolve operation(s) -> run steps in thread pool -> return buffer
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence

from .config import ImageApiConfig, get_config
from .errors import ImageApiError, PipelineStepError, ProcessingError
from .metadata import MetadataExtractor
from .models import ImageMetadata, OperationType, PipelineStep
from .pipeline import PipelineExecutor
from .registry import OperationRegistry

logger = logging.getLogger(__name__)


class ImageProcessor:
    """Owns the thread pool, the registry and the pipeline executor"""

    def __init__(self, config: ImageApiConfig = None, registry: OperationRegistry = None):
        self.config = config or get_config()
        self.registry = registry or OperationRegistry.default(self.config)
        self.metadata_extractor = MetadataExtractor(self.config)
        self.executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
        self.pipeline = PipelineExecutor(
            self.registry,
            executor=self.executor,
            step_timeout=self.config.step_timeout,
        )

    def validate_input(self, buffer: bytes) -> ImageMetadata:
        """
        Validate input buffer

        Returns:
            ImageMetadata của input

        Raises:
            UnsupportedFormatError: If the buffer is not a supported image
        """
        return self.metadata_extractor.describe(buffer)

    def describe(self, buffer: bytes) -> ImageMetadata:
        return self.metadata_extractor.describe(buffer)

    def detect_format(self, buffer: bytes) -> str:
        return self.metadata_extractor.detect_format(buffer)

    async def apply(self, buffer: bytes, step: PipelineStep) -> bytes:
        """
        Run a single operation

        Raises the operation's own error instead of a pipeline step error.
        """
        try:
            return await self.run_pipeline(buffer, [step])
        except PipelineStepError as e:
            if isinstance(e.cause, ImageApiError):
                raise e.cause
            raise ProcessingError(f"{step.type.value} failed: {e.cause}") from e.cause

    async def run_pipeline(self, buffer: bytes, steps: Sequence[PipelineStep]) -> bytes:
        """
        Main processing method - async interface

        Args:
            buffer: Encoded input image
            steps: Validated pipeline steps

        Returns:
            Final encoded buffer
        """
        start_time = time.time()
        self.validate_input(buffer)

        result = await self.pipeline.execute(buffer, steps)

        processing_time = time.time() - start_time
        logger.info(
            f"Processed {len(buffer)} -> {len(result)} bytes with "
            f"[{', '.join(step.type.value for step in steps)}] in {processing_time:.2f}s"
        )
        return result

    def run_pipeline_sync(self, buffer: bytes, steps: Sequence[PipelineStep]) -> bytes:
        """Synchronous processing method"""
        self.validate_input(buffer)
        return self.pipeline.execute_sync(buffer, steps)

    def get_supported_operations(self) -> List[str]:
        return [operation_type.value for operation_type in OperationType if operation_type in self.registry]

    def get_supported_formats(self) -> list:
        """Get list of supported image formats"""
        return list(self.config.supported_formats)

    def cleanup(self):
        """Cleanup resources"""
        self.executor.shutdown(wait=True)
