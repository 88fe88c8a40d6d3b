"""
Pipeline executor that runs validated steps over an image buffer.

The executor:
1. Resolves every step's operation through the registry before running any
2. Executes steps strictly in order, feeding each output buffer to the next step
3. Stops at the first failure and reports the 1-based step index and type
"""

import asyncio
import logging
import time
from concurrent.futures import Executor
from typing import List, Optional, Sequence, Tuple

from .errors import ImageApiError, PipelineStepError, ProcessingError, UnknownOperationError, ValidationError
from .models import PipelineStep
from .operations import ImageOperation
from .registry import OperationRegistry

logger = logging.getLogger(__name__)


class PipelineExecutor:
    """Sequential, fail-fast execution of pipeline steps"""

    def __init__(
        self,
        registry: OperationRegistry,
        executor: Optional[Executor] = None,
        step_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.step_timeout = step_timeout

    def plan(self, steps: Sequence[PipelineStep]) -> List[Tuple[int, PipelineStep, ImageOperation]]:
        """
        Resolve operations cho tất cả steps

        Raises:
            ValidationError: If the pipeline is empty
            UnknownOperationError: If a step's type is not registered
        """
        if not steps:
            raise ValidationError("Pipeline requires a non-empty operations array", field="operations")

        planned = []
        for index, step in enumerate(steps, start=1):
            try:
                operation = self.registry.resolve(step.type)
            except UnknownOperationError as e:
                raise UnknownOperationError(e.operation_type, step_index=index)
            planned.append((index, step, operation))
        return planned

    def execute_sync(self, buffer: bytes, steps: Sequence[PipelineStep]) -> bytes:
        """
        Run the pipeline in the calling thread

        Args:
            buffer: Encoded input image
            steps: Validated steps in execution order

        Returns:
            Final buffer after every step succeeded

        Raises:
            PipelineStepError: If any step fails
        """
        current = buffer
        for index, step, operation in self.plan(steps):
            try:
                current = operation.execute(current, step.params)
            except Exception as e:
                raise self._step_error(index, step, e)
            logger.debug(f"Step {index} ({step.type.value}) done: {len(current)} bytes")
        return current

    async def execute(self, buffer: bytes, steps: Sequence[PipelineStep]) -> bytes:
        """
        Run the pipeline, offloading each step to the thread pool

        Same contract as execute_sync; the event loop stays free while Pillow works.
        """
        loop = asyncio.get_running_loop()
        current = buffer
        start_time = time.perf_counter()

        for index, step, operation in self.plan(steps):
            future = loop.run_in_executor(self.executor, operation.execute, current, step.params)
            try:
                if self.step_timeout:
                    current = await asyncio.wait_for(future, timeout=self.step_timeout)
                else:
                    current = await future
            except asyncio.TimeoutError:
                # the worker thread cannot be interrupted; it stays busy until Pillow returns
                logger.warning(
                    f"Step {index} ({step.type.value}) timed out; its worker thread is still running"
                )
                raise self._step_error(
                    index, step, ProcessingError(f"timed out after {self.step_timeout:g}s")
                )
            except Exception as e:
                raise self._step_error(index, step, e)

        logger.info(f"Pipeline of {len(steps)} steps completed in {time.perf_counter() - start_time:.3f}s")
        return current

    @staticmethod
    def _step_error(index: int, step: PipelineStep, error: Exception) -> ImageApiError:
        logger.warning(f"Pipeline step {index} ({step.type.value}) failed: {error}")
        if isinstance(error, ValidationError):
            error.step_index = index
            error.step_type = step.type.value
            return error
        result = PipelineStepError(index, step.type.value, error)
        result.__cause__ = error
        return result
