import json

import pytest

from image_api.errors import UnknownOperationError, ValidationError
from image_api.models import (
    CropParams,
    FilterName,
    ImageFormat,
    OperationType,
    PipelineStep,
    ResizeFit,
    ResizeParams,
    RotateParams,
)
from image_api.validation import (
    parse_crop_params,
    parse_filter_params,
    parse_format_params,
    parse_pipeline_steps,
    parse_resize_params,
    parse_rotate_params,
    to_number,
)


def test_resize_accepts_numeric_strings():
    params = parse_resize_params({"width": "800", "height": "600", "fit": "Contain"})
    assert params == ResizeParams(width=800, height=600, fit=ResizeFit.CONTAIN)


def test_resize_height_and_fit_are_optional():
    params = parse_resize_params({"width": 320})
    assert params.height is None
    assert params.fit is None


@pytest.mark.parametrize(
    "raw, field",
    [
        ({}, "width"),
        ({"width": "abc"}, "width"),
        ({"width": 0}, "width"),
        ({"width": 10.5}, "width"),
        ({"width": "inf"}, "width"),
        ({"width": True}, "width"),
        ({"width": 10, "height": -1}, "height"),
        ({"width": 10, "fit": "stretch"}, "fit"),
    ],
)
def test_resize_rejects_invalid_fields(raw, field):
    with pytest.raises(ValidationError) as exc_info:
        parse_resize_params(raw)
    assert exc_info.value.field == field


def test_crop_requires_all_fields():
    assert parse_crop_params({"left": "0", "top": 5, "width": 10, "height": 20}) == CropParams(
        left=0, top=5, width=10, height=20
    )
    with pytest.raises(ValidationError) as exc_info:
        parse_crop_params({"left": -1, "top": 0, "width": 10, "height": 10})
    assert exc_info.value.field == "left"


def test_crop_reports_first_failing_field():
    with pytest.raises(ValidationError) as exc_info:
        parse_crop_params({"left": 0, "top": "x", "width": 0})
    assert exc_info.value.field == "top"


def test_format_is_case_insensitive():
    assert parse_format_params({"format": "PNG"}).format == ImageFormat.PNG
    with pytest.raises(ValidationError) as exc_info:
        parse_format_params({"format": "gif"})
    assert exc_info.value.field == "format"


@pytest.mark.parametrize("angle", [90, "180", 270.0])
def test_rotate_accepts_permitted_angles(angle):
    assert parse_rotate_params({"angle": angle}).angle == int(float(angle))


@pytest.mark.parametrize("angle", [0, 45, 360, "-90", "ninety", None])
def test_rotate_rejects_other_angles(angle):
    with pytest.raises(ValidationError) as exc_info:
        parse_rotate_params({"angle": angle})
    assert exc_info.value.field == "angle"


def test_filter_rejects_negative_sigma():
    with pytest.raises(ValidationError) as exc_info:
        parse_filter_params({"filter": "blur", "sigma": -1})
    assert exc_info.value.field == "sigma"


def test_filter_rejects_zero_sigma():
    with pytest.raises(ValidationError):
        parse_filter_params({"filter": "sharpen", "sigma": "0"})


def test_filter_allows_sigma_with_grayscale():
    params = parse_filter_params({"filter": "GrayScale", "sigma": "2.5"})
    assert params.filter == FilterName.GRAYSCALE
    assert params.sigma == 2.5


def test_to_number_returns_float_when_not_integer():
    assert to_number("1.5", "sigma", positive=True) == 1.5


def test_to_number_rejects_integer_too_large_for_float():
    with pytest.raises(ValidationError) as exc_info:
        to_number(10 ** 400, "width", minimum=1, integer=True)
    assert exc_info.value.field == "width"


def test_pipeline_with_huge_integer_is_validation_error():
    raw = '[{"type": "resize", "params": {"width": ' + "9" * 400 + "}}]"
    with pytest.raises(ValidationError) as exc_info:
        parse_pipeline_steps(raw)
    assert exc_info.value.field == "width"
    assert exc_info.value.step_index == 1


def test_pipeline_accepts_json_string_and_preserves_order():
    raw = json.dumps([
        {"type": "resize", "params": {"width": 800}},
        {"type": "rotate", "params": {"angle": 90}},
        {"type": "resize", "params": {"width": 800}},
    ])
    steps = parse_pipeline_steps(raw)
    assert [step.type for step in steps] == [OperationType.RESIZE, OperationType.ROTATE, OperationType.RESIZE]
    assert steps[1].params == RotateParams(angle=90)


def test_pipeline_accepts_native_list():
    steps = parse_pipeline_steps([{"type": "FORMAT", "params": {"format": "webp"}}])
    assert steps[0].type == OperationType.FORMAT


@pytest.mark.parametrize("raw", ["[]", [], "not json", '{"type": "resize"}', 42, None])
def test_pipeline_rejects_bad_containers(raw):
    with pytest.raises(ValidationError) as exc_info:
        parse_pipeline_steps(raw)
    assert exc_info.value.field == "operations"


def test_pipeline_rejects_non_object_element():
    with pytest.raises(ValidationError) as exc_info:
        parse_pipeline_steps([{"type": "rotate", "params": {"angle": 90}}, "rotate"])
    assert exc_info.value.step_index == 2


def test_pipeline_rejects_unknown_type():
    with pytest.raises(UnknownOperationError) as exc_info:
        parse_pipeline_steps([{"type": "sepia", "params": {}}])
    assert "unknown operation type" in str(exc_info.value)
    assert exc_info.value.step_index == 1


def test_pipeline_step_error_names_index_and_field():
    with pytest.raises(ValidationError) as exc_info:
        parse_pipeline_steps([
            {"type": "resize", "params": {"width": 100}},
            {"type": "filter", "params": {"filter": "blur", "sigma": -1}},
        ])
    error = exc_info.value
    assert error.step_index == 2
    assert error.field == "sigma"
    assert "Step 2 (filter)" in error.message


def test_pipeline_step_rejects_mismatched_params():
    with pytest.raises(ValidationError):
        PipelineStep(type=OperationType.ROTATE, params=ResizeParams(width=10))
