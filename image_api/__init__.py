"""
Image API - REST service xử lý ảnh có xác thực
Resize, crop, rotate, format conversion, filters và multi-step pipelines
"""

__version__ = "1.0.0"
__author__ = "Image API Team"

from .models import PipelineStep, RequestContext, OperationType
from .core import ImageProcessor
from .pipeline import PipelineExecutor
from .registry import OperationRegistry
from .api import create_app

__all__ = [
    "PipelineStep",
    "RequestContext",
    "OperationType",
    "ImageProcessor",
    "PipelineExecutor",
    "OperationRegistry",
    "create_app",
]
