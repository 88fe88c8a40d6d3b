"""
Pydantic models cho operation parameters, pipeline steps và request context
Dùng chung giữa validation, operations, handler chain và API
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError


def utc_now_iso() -> str:
    """ISO-8601 timestamp (UTC) cho log entries và error bodies"""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class OperationType(str, Enum):
    """Các loại operation được hỗ trợ"""
    RESIZE = "resize"
    CROP = "crop"
    FORMAT = "format"
    ROTATE = "rotate"
    FILTER = "filter"


class ResizeFit(str, Enum):
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    TIFF = "tiff"


class FilterName(str, Enum):
    BLUR = "blur"
    SHARPEN = "sharpen"
    GRAYSCALE = "grayscale"


ALLOWED_ANGLES = (90, 180, 270)


class ResizeParams(BaseModel):
    """Parameters cho resize"""
    model_config = ConfigDict(frozen=True)

    width: int = Field(..., ge=1, description="Target width (pixels)")
    height: Optional[int] = Field(default=None, ge=1, description="Target height; None giữ aspect ratio")
    fit: Optional[ResizeFit] = Field(default=None, description="Fit mode; None dùng default (cover)")


class CropParams(BaseModel):
    """Parameters cho crop"""
    model_config = ConfigDict(frozen=True)

    left: int = Field(..., ge=0)
    top: int = Field(..., ge=0)
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)


class FormatParams(BaseModel):
    """Parameters cho format conversion"""
    model_config = ConfigDict(frozen=True)

    format: ImageFormat


class RotateParams(BaseModel):
    """Parameters cho rotate"""
    model_config = ConfigDict(frozen=True)

    angle: Literal[90, 180, 270]


class FilterParams(BaseModel):
    """Parameters cho filter; sigma chỉ có ý nghĩa với blur/sharpen"""
    model_config = ConfigDict(frozen=True)

    filter: FilterName
    sigma: Optional[float] = Field(default=None, gt=0)


OperationParameters = Union[ResizeParams, CropParams, FormatParams, RotateParams, FilterParams]

PARAMS_BY_TYPE: Dict[OperationType, type] = {
    OperationType.RESIZE: ResizeParams,
    OperationType.CROP: CropParams,
    OperationType.FORMAT: FormatParams,
    OperationType.ROTATE: RotateParams,
    OperationType.FILTER: FilterParams,
}


@dataclass(frozen=True)
class PipelineStep:
    """One validated step: operation tag plus the matching parameters"""

    type: OperationType
    params: OperationParameters

    def __post_init__(self):
        expected = PARAMS_BY_TYPE.get(self.type)
        if expected is None or not isinstance(self.params, expected):
            raise ValidationError(
                f"params {type(self.params).__name__} do not match operation type {self.type}",
                field="params",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "params": self.params.model_dump(mode="json", exclude_none=True),
        }


class AuthIdentity(BaseModel):
    """Resolved user sau khi xác thực token"""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="User ID")
    email: str = Field(..., description="Email của user")


@dataclass
class RequestContext:
    """
    Per-request carrier: token, identity, endpoint and validated params.

    identity is attached once by the authentication stage and is read-only
    afterwards.
    """

    endpoint: str
    params: Any = None
    token: Optional[str] = None
    identity: Optional[AuthIdentity] = None

    def attach_identity(self, identity: AuthIdentity) -> None:
        if self.identity is not None:
            raise RuntimeError("identity already attached to request context")
        self.identity = identity

    def params_for_log(self) -> Any:
        """JSON-friendly view của params cho log entries"""
        if isinstance(self.params, (list, tuple)):
            return {"operations": [step.to_dict() for step in self.params]}
        if isinstance(self.params, BaseModel):
            return self.params.model_dump(mode="json", exclude_none=True)
        return self.params


class LogEntry(BaseModel):
    """Structured record của một request đi qua handler chain"""
    timestamp: str = Field(default_factory=utc_now_iso)
    level: Literal["info", "error"]
    user: Optional[str] = Field(default=None, description="Email của user nếu đã xác thực")
    user_id: Optional[str] = None
    endpoint: str
    params: Any = None
    duration_ms: float = Field(..., ge=0)
    result: Literal["success", "error"]
    message: Optional[str] = None


class ImageMetadata(BaseModel):
    """Metadata của ảnh"""
    width: int = Field(..., description="Chiều rộng ảnh (pixels)")
    height: int = Field(..., description="Chiều cao ảnh (pixels)")
    mode: str = Field(..., description="Color mode (RGB, RGBA, L, etc.)")
    format: str = Field(..., description="Định dạng (jpeg, png, webp, ...)")
    file_size: int = Field(..., description="Kích thước buffer (bytes)")
    has_transparency: bool = Field(default=False, description="Có transparency không")

    @field_validator('width', 'height', 'file_size')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('Giá trị phải lớn hơn 0')
        return v


class AuthRequest(BaseModel):
    """Request body cho register/login"""
    email: Optional[str] = Field(default=None, description="Email")
    password: Optional[str] = Field(default=None, description="Password")


class TokenData(BaseModel):
    token: str


class ApiResponse(BaseModel):
    """Response envelope cho JSON endpoints"""
    success: bool = Field(..., description="Thành công hay không")
    data: Optional[Any] = Field(default=None, description="Payload")
    error: Optional[str] = Field(default=None, description="Thông báo lỗi nếu có")
    timestamp: str = Field(default_factory=utc_now_iso)


class ErrorResponse(BaseModel):
    """Structured error body"""
    error: str
    code: str
    timestamp: str = Field(default_factory=utc_now_iso)


class HealthResponse(BaseModel):
    """Response model cho health check"""
    status: str = Field(default="ok", description="Trạng thái service")
    version: str = Field(default="1.0.0", description="Version")
    timestamp: str = Field(default_factory=utc_now_iso)
