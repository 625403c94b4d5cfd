from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

JS_IDENTIFIER_PATTERN = r"^[A-Za-z_$][A-Za-z0-9_$]*$"


class RenderKind(str, Enum):
    serialize = "serialize"
    screenshot = "screenshot"
    animation = "animation"


class ScreenshotErrorType(str, Enum):
    forbidden = "Forbidden"
    no_response = "NoResponse"


class Viewport(BaseModel):
    width: int
    height: int

    @field_validator("width", "height")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Viewport dimensions must be positive integers.")
        return value


class ScreenshotClip(BaseModel):
    x: float = Field(default=0, ge=0)
    y: float = Field(default=0, ge=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)

    model_config = ConfigDict(extra="forbid")


class ScreenshotOptions(BaseModel):
    """Caller-tunable capture options.

    Format and encoding are not options: screenshots are always JPEG bytes.
    Unknown keys are rejected.
    """

    quality: Optional[int] = Field(default=None, ge=0, le=100)
    full_page: bool = Field(default=False, alias="fullPage")
    clip: Optional[ScreenshotClip] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @model_validator(mode="after")
    def validate_single_area(self) -> "ScreenshotOptions":
        if self.full_page and self.clip is not None:
            raise ValueError("fullPage and clip cannot be combined.")
        return self


class AnimationOptions(BaseModel):
    ready_var_name: str = Field(default="cxReady", alias="readyVarName", pattern=JS_IDENTIFIER_PATTERN)
    next_func_name: str = Field(default="nextFrame", alias="nextFuncName", pattern=JS_IDENTIFIER_PATTERN)
    frames: int = Field(default=10, ge=1)
    width: int = Field(default=512, gt=0)
    height: int = Field(default=512, gt=0)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class RenderRequest(BaseModel):
    url: HttpUrl
    kind: RenderKind = RenderKind.serialize
    is_mobile: bool = False
    viewport: Optional[Viewport] = None
    screenshot: Optional[ScreenshotOptions] = None
    animation: Optional[AnimationOptions] = None

    model_config = ConfigDict(frozen=True)


class SerializedResponse(BaseModel):
    status: int
    content: str = ""

    model_config = ConfigDict(frozen=True)
