from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

NAME_MAX_LENGTH = 100

FlipAnimation = Literal["hard", "soft", "fade", "vertical"]
PageLayout = Literal["single", "double"]
NavigationStyle = Literal["arrows", "thumbnails", "both", "none"]


class MagazineStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class CamelModel(BaseModel):
    """Python attributes in snake_case, JSON in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DisplayConfig(CamelModel):
    """Viewer settings. Every field is required; defaults live in defaults.yaml."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    flip_animation: FlipAnimation
    flip_speed: int = Field(ge=0)
    show_shadow: bool
    shadow_opacity: float = Field(ge=0.0, le=1.0)
    page_layout: PageLayout
    background_color: str = Field(min_length=1)
    show_page_numbers: bool
    navigation_style: NavigationStyle
    auto_play: bool
    auto_play_interval: int = Field(gt=0)


class PageImageOptions(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    quality: str
    format: str


class PageImage(CamelModel):
    page_number: int = Field(ge=1)
    image_url: str
    public_id: str
    width: int = 0
    height: int = 0


class MagazineRecord(CamelModel):
    id: str
    share_id: str
    name: str
    pdf_url: Optional[str] = None
    pdf_public_id: Optional[str] = None
    pages: List[PageImage] = Field(default_factory=list)
    total_pages: int = 0
    config: DisplayConfig
    status: MagazineStatus
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    share_url: Optional[str] = None

    @property
    def thumbnail(self) -> Optional[str]:
        return self.pages[0].image_url if self.pages else None


class MagazineStatusView(CamelModel):
    id: str
    name: str
    share_id: str
    status: MagazineStatus
    total_pages: int
    error_message: Optional[str] = None


class MagazineSummary(CamelModel):
    id: str
    name: str
    share_id: str
    total_pages: int
    created_at: datetime
    updated_at: datetime
    background_color: str
    thumbnail: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_more: bool


class UpdateMagazineRequest(CamelModel):
    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Magazine name is required")
        if len(value) > NAME_MAX_LENGTH:
            raise ValueError(f"Name cannot exceed {NAME_MAX_LENGTH} characters")
        return value


class ConfigMetadata(CamelModel):
    defaults: DisplayConfig
    options: Dict[str, List[str]]


class MagazineResponse(BaseModel):
    success: bool = True
    data: MagazineRecord


class MagazineStatusResponse(BaseModel):
    success: bool = True
    data: MagazineStatusView


class MagazineListResponse(BaseModel):
    success: bool = True
    data: List[MagazineSummary]
    pagination: Pagination


class ConfigMetadataResponse(BaseModel):
    success: bool = True
    data: ConfigMetadata


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime: float
