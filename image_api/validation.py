"""
Parameter validation: convert untrusted form/JSON input into typed parameters

Every parser is atomic: the first failing field raises ValidationError and no
partial result is returned.
"""

import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Type

from .errors import UnknownOperationError, ValidationError
from .models import (
    ALLOWED_ANGLES,
    CropParams,
    FilterName,
    FilterParams,
    FormatParams,
    ImageFormat,
    OperationParameters,
    OperationType,
    PipelineStep,
    ResizeFit,
    ResizeParams,
    RotateParams,
)

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_number(
    value: Any,
    name: str,
    minimum: Optional[float] = None,
    integer: bool = False,
    positive: bool = False,
):
    """
    Convert a numeric or numeric-string value

    Args:
        value: Raw input value
        name: Field name used in error messages
        minimum: Inclusive lower bound
        integer: Require an integral value
        positive: Require value > 0

    Returns:
        int when integer is set, float otherwise

    Raises:
        ValidationError: If the value is missing or violates a constraint
    """
    if _is_missing(value):
        raise ValidationError(f"Missing required parameter: {name}", field=name)

    # bool là subclass của int nhưng không phải số hợp lệ ở đây
    if isinstance(value, bool):
        raise ValidationError(f"Invalid number for {name}", field=name)

    if not isinstance(value, (int, float, str)):
        raise ValidationError(f"Invalid number for {name}", field=name)
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(f"Invalid number for {name}", field=name)
    except OverflowError:
        # int quá lớn cho float
        raise ValidationError(f"{name} must be a finite number", field=name)

    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number", field=name)
    if integer and not number.is_integer():
        raise ValidationError(f"{name} must be an integer", field=name)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be >= {minimum:g}", field=name)
    if positive and number <= 0:
        raise ValidationError(f"{name} must be > 0", field=name)

    return int(number) if integer else number


def to_choice(value: Any, name: str, choices: Type, required: bool = True):
    """Case-insensitive match against an Enum; returns None for an absent optional value"""
    if _is_missing(value):
        if required:
            raise ValidationError(f"Missing required parameter: {name}", field=name)
        return None

    allowed = ", ".join(member.value for member in choices)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {name}. Allowed: {allowed}", field=name)

    try:
        return choices(value.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid {name}. Allowed: {allowed}", field=name)


def parse_resize_params(raw: Mapping[str, Any]) -> ResizeParams:
    width = to_number(raw.get("width"), "width", minimum=1, integer=True)
    height = None
    if not _is_missing(raw.get("height")):
        height = to_number(raw.get("height"), "height", minimum=1, integer=True)
    fit = to_choice(raw.get("fit"), "fit", ResizeFit, required=False)
    return ResizeParams(width=width, height=height, fit=fit)


def parse_crop_params(raw: Mapping[str, Any]) -> CropParams:
    left = to_number(raw.get("left"), "left", minimum=0, integer=True)
    top = to_number(raw.get("top"), "top", minimum=0, integer=True)
    width = to_number(raw.get("width"), "width", minimum=1, integer=True)
    height = to_number(raw.get("height"), "height", minimum=1, integer=True)
    return CropParams(left=left, top=top, width=width, height=height)


def parse_format_params(raw: Mapping[str, Any]) -> FormatParams:
    return FormatParams(format=to_choice(raw.get("format"), "format", ImageFormat))


def parse_rotate_params(raw: Mapping[str, Any]) -> RotateParams:
    angle = to_number(raw.get("angle"), "angle", integer=True)
    if angle not in ALLOWED_ANGLES:
        raise ValidationError("angle must be one of 90, 180, 270", field="angle")
    return RotateParams(angle=angle)


def parse_filter_params(raw: Mapping[str, Any]) -> FilterParams:
    filter_name = to_choice(raw.get("filter"), "filter", FilterName)
    sigma = None
    if not _is_missing(raw.get("sigma")):
        # sigma được chấp nhận cả với grayscale, chỉ bị bỏ qua khi execute
        sigma = to_number(raw.get("sigma"), "sigma", positive=True)
    return FilterParams(filter=filter_name, sigma=sigma)


PARSERS = {
    OperationType.RESIZE: parse_resize_params,
    OperationType.CROP: parse_crop_params,
    OperationType.FORMAT: parse_format_params,
    OperationType.ROTATE: parse_rotate_params,
    OperationType.FILTER: parse_filter_params,
}


def parse_operation_type(value: Any, step_index: Optional[int] = None) -> OperationType:
    if not isinstance(value, str):
        raise UnknownOperationError(value, step_index=step_index)
    try:
        return OperationType(value.strip().lower())
    except ValueError:
        raise UnknownOperationError(value, step_index=step_index)


def parse_params(operation_type: OperationType, raw: Optional[Mapping[str, Any]]) -> OperationParameters:
    """Validate raw params cho một operation type"""
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValidationError("params must be an object", field="params")
    return PARSERS[operation_type](raw)


def _load_operations(raw: Any) -> List[Any]:
    """Accept a JSON-encoded array string or a native list"""
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("Invalid JSON for operations", field="operations")
        if not isinstance(parsed, list):
            raise ValidationError("operations must be an array", field="operations")
        return parsed
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if raw is None:
        raise ValidationError("Missing required parameter: operations", field="operations")
    raise ValidationError("operations must be an array", field="operations")


def parse_pipeline_steps(raw: Any) -> List[PipelineStep]:
    """
    Validate a pipeline submission into ordered PipelineSteps

    Args:
        raw: JSON string or list of {type, params} objects

    Returns:
        Non-empty list of PipelineStep in submission order

    Raises:
        ValidationError: On the first invalid step (message names the 1-based index)
    """
    items = _load_operations(raw)
    if not items:
        raise ValidationError("Pipeline requires a non-empty operations array", field="operations")

    steps = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Step {index}: each operation must be an object", field="operations", step_index=index)

        operation_type = parse_operation_type(item.get("type"), step_index=index)
        try:
            params = parse_params(operation_type, item.get("params"))
        except ValidationError as e:
            raise ValidationError(
                f"Step {index} ({operation_type.value}): {e.message}",
                field=e.field,
                step_index=index,
                step_type=operation_type.value,
            ) from e

        steps.append(PipelineStep(type=operation_type, params=params))

    logger.debug(f"Validated pipeline with {len(steps)} steps")
    return steps


def collect_form_params(**fields: Any) -> Dict[str, Any]:
    """Drop form fields that were not submitted"""
    return {key: value for key, value in fields.items() if value is not None}
