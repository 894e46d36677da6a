# printables/domain/models.py
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from printables.config.layout import Color, DEFAULT_COLOR, GENERATION_ORDER, TemplateType


@dataclass
class TextElement:
    """One operator-placed text box, already converted to PDF points.

    (x, y) is the bottom-left corner of the box.
    """
    id: str
    type: str  # "headline", "subline", "calendar", "custom"
    text: str
    x: float
    y: float
    width: float
    height: float
    font_size: float
    color: Color = DEFAULT_COLOR


@dataclass
class QrBox:
    x: float
    y: float
    size: float


@dataclass
class ItemConfig:
    """Finalized editor state for one template type."""
    type: TemplateType
    text_elements: List[TextElement] = field(default_factory=list)
    qr_position: Optional[QrBox] = None


@dataclass
class GenerationResult:
    success: bool
    type: TemplateType
    key: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        d = {"success": self.success, "type": self.type.value}
        if self.key is not None:
            d["key"] = self.key
        if self.error is not None:
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "GenerationResult":
        return cls(
            success=bool(d["success"]),
            type=TemplateType(d["type"]),
            key=d.get("key"),
            error=d.get("error"),
        )


@dataclass
class Classification:
    success: bool
    partial_success: bool
    succeeded: List[GenerationResult]
    failed: List[GenerationResult]


def classify(results: Iterable[GenerationResult]) -> Classification:
    """Single source of truth for batch success.

    success: at least one item succeeded.
    partial_success: some, but not all, items failed.
    """
    results = list(results)
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    return Classification(
        success=len(succeeded) > 0,
        partial_success=len(succeeded) > 0 and len(failed) > 0,
        succeeded=succeeded,
        failed=failed,
    )


def collect_errors(results: Iterable[GenerationResult]) -> List[str]:
    return [f"{r.type.value}: {r.error}" for r in results if not r.success and r.error]


@dataclass
class BatchGenerationResult:
    success: bool
    event_id: str
    results: List[GenerationResult]
    errors: List[str]

    @classmethod
    def from_results(cls, event_id: str, results: List[GenerationResult]) -> "BatchGenerationResult":
        return cls(
            success=classify(results).success,
            event_id=event_id,
            results=results,
            errors=collect_errors(results),
        )

    @property
    def partial_success(self) -> bool:
        return classify(self.results).partial_success

    @property
    def failed_types(self) -> List[TemplateType]:
        return [r.type for r in self.results if not r.success]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "eventId": self.event_id,
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
        }


def merge_results(previous: List[GenerationResult], retried: List[GenerationResult]) -> List[GenerationResult]:
    """Replace earlier outcomes with retried ones, keyed by template type.

    The merged list follows GENERATION_ORDER, so the order in which the
    retry produced its results does not matter.
    """
    by_type: Dict[TemplateType, GenerationResult] = {r.type: r for r in previous}
    for r in retried:
        by_type[r.type] = r
    position = {t: i for i, t in enumerate(GENERATION_ORDER)}
    return sorted(by_type.values(), key=lambda r: position[r.type])
