from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional, Union

from printables.config.layout import (
    TemplateType,
    css_to_pdf_position,
    css_to_pdf_size,
    get_template_spec,
    hex_to_rgb,
    resolve_template_type,
)
from printables.domain.models import GenerationResult, ItemConfig, QrBox, TextElement


class CamelModel(BaseModel):
    # JSON uses camelCase (eventId, canvasScale); Python keeps snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Point(CamelModel):
    x: float
    y: float


class Size(CamelModel):
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class TextElementIn(CamelModel):
    id: str
    type: str = "custom"                   # headline, subline, calendar, custom
    text: str = ""
    position: Point                        # CSS px, top-left of the box
    size: Size                             # CSS px
    font_size: float = Field(gt=0)         # CSS px
    color: str = "#000000"


class QrPositionIn(CamelModel):
    x: float
    y: float
    size: float = Field(gt=0)


class ItemIn(CamelModel):
    type: TemplateType
    text_elements: List[TextElementIn] = Field(default_factory=list)
    qr_position: Optional[QrPositionIn] = None
    canvas_scale: float = Field(default=1.0, gt=0)  # CSS px per PDF point

    @field_validator("type", mode="before")
    @classmethod
    def _resolve_type(cls, v):
        # Editor names ("tshirt", "hoodie") map onto the stored template names
        return resolve_template_type(v) if isinstance(v, str) else v

    def to_item_config(self) -> ItemConfig:
        """Convert the editor's CSS pixel state into PDF points (bottom-left origin)."""
        page_height = get_template_spec(self.type).page_height
        scale = self.canvas_scale

        elements = []
        for e in self.text_elements:
            x, y = css_to_pdf_position(e.position.x, e.position.y + e.size.height, page_height, scale)
            width, height = css_to_pdf_size(e.size.width, e.size.height, scale)
            elements.append(TextElement(
                id=e.id,
                type=e.type,
                text=e.text,
                x=x,
                y=y,
                width=width,
                height=height,
                font_size=e.font_size / scale,
                color=hex_to_rgb(e.color),
            ))

        qr_box = None
        if self.qr_position is not None:
            q = self.qr_position
            x, y = css_to_pdf_position(q.x, q.y + q.size, page_height, scale)
            qr_box = QrBox(x=x, y=y, size=q.size / scale)

        return ItemConfig(type=self.type, text_elements=elements, qr_position=qr_box)


class EventFields(CamelModel):
    event_id: str = Field(min_length=1)
    school_name: str = Field(min_length=1)
    event_date: str = Field(min_length=10)       # ISO 8601, time part ignored
    access_code: Optional[Union[int, str]] = None


class GenerateRequest(EventFields):
    items: List[ItemIn] = Field(min_length=1)
    skipped_items: List[TemplateType] = Field(default_factory=list)
    include_mockups: bool = False

    @field_validator("skipped_items", mode="before")
    @classmethod
    def _resolve_skipped(cls, v):
        if not isinstance(v, list):
            return v
        return [resolve_template_type(t) if isinstance(t, str) else t for t in v]


class GenerateAllRequest(EventFields):
    pass


class ResultIn(CamelModel):
    success: bool
    type: TemplateType
    key: Optional[str] = None
    error: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _resolve_type(cls, v):
        return resolve_template_type(v) if isinstance(v, str) else v

    def to_result(self) -> GenerationResult:
        return GenerationResult(success=self.success, type=self.type, key=self.key, error=self.error)


class RetryRequest(EventFields):
    previous: List[ResultIn] = Field(min_length=1)
    items: List[ItemIn] = Field(default_factory=list)


class PreviewRequest(CamelModel):
    event_id: str = Field(min_length=1)
    access_code: Optional[Union[int, str]] = None
    item: ItemIn
    delivery: Literal["url", "inline"] = "inline"
