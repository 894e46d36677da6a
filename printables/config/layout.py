# printables/config/layout.py
"""
Static geometry for every printable template.

Coordinates are PDF points (1/72 inch) with the origin at the bottom-left
corner of the page, x growing right and y growing up. The editor works in
CSS pixels with a top-left origin; the helpers at the bottom of this module
convert those values once, at the HTTP boundary.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

Color = Tuple[float, float, float]

POINTS_PER_INCH = 72.0
MM_PER_INCH = 25.4

DEFAULT_COLOR: Color = (0.0, 0.0, 0.0)
BRAND_COLOR: Color = (0.91, 0.45, 0.32)   # #E87452
TEAL_COLOR: Color = (0.24, 0.48, 0.48)    # #3D7A7A

TEMPLATES_PREFIX = "templates"
FONTS_PREFIX = "fonts"
EVENTS_PREFIX = "events"
PREVIEWS_PREFIX = "previews"

GERMAN_MONTHS = (
    "Januar", "Februar", "März", "April", "Mai", "Juni",
    "Juli", "August", "September", "Oktober", "November", "Dezember",
)


class TemplateType(str, Enum):
    FLYER1 = "flyer1"
    FLYER2 = "flyer2"
    FLYER3 = "flyer3"
    FLYER1_BACK = "flyer1-back"
    FLYER2_BACK = "flyer2-back"
    FLYER3_BACK = "flyer3-back"
    BUTTON = "button"
    TSHIRT_PRINT = "tshirt-print"
    HOODIE_PRINT = "hoodie-print"
    MINICARD = "minicard"
    CD_JACKET = "cd-jacket"
    MOCK_TSHIRT = "mock-tshirt"
    MOCK_HOODIE = "mock-hoodie"


class FontName(str, Enum):
    FREDOKA = "fredoka"
    SPRINGWOOD_DISPLAY = "springwood-display"


FONT_FILENAMES: Dict[FontName, str] = {
    FontName.FREDOKA: "Fredoka-SemiBold.ttf",
    FontName.SPRINGWOOD_DISPLAY: "SpringwoodDisplay.otf",
}


@dataclass(frozen=True)
class TextPlacement:
    x: float
    y: float
    font_size: float
    max_width: Optional[float] = None
    color: Color = DEFAULT_COLOR
    align: str = "center"  # "left", "center", "right"


@dataclass(frozen=True)
class ImagePlacement:
    x: float
    y: float
    width: float
    height: float
    fit: str = "contain"  # "contain", "cover", "stretch"


@dataclass(frozen=True)
class QrPlacement:
    x: float
    y: float
    size: float
    caption: Optional[TextPlacement] = None


# --- Output folders ---

def event_printables_folder(event_id: str) -> str:
    return f"{EVENTS_PREFIX}/{event_id}/printables"

def event_flyers_folder(event_id: str) -> str:
    return f"{event_printables_folder(event_id)}/flyers"

def event_minicards_folder(event_id: str) -> str:
    return f"{event_printables_folder(event_id)}/minicards"

def event_cd_jacket_folder(event_id: str) -> str:
    return f"{event_printables_folder(event_id)}/cd-jacket"

def event_logo_folder(event_id: str) -> str:
    return f"{event_printables_folder(event_id)}/logo"

def event_mockups_folder(event_id: str) -> str:
    return f"{EVENTS_PREFIX}/{event_id}/mockups"


@dataclass(frozen=True)
class TemplateSpec:
    """Everything the pipeline needs to know about one product variant."""
    template_type: TemplateType
    folder: Callable[[str], str]
    width_mm: float
    height_mm: float
    bleed_mm: float
    font: FontName
    page_width: float   # points, matches the uploaded template
    page_height: float
    required: bool = True

    @property
    def template_filename(self) -> str:
        return f"{self.template_type.value}-template.pdf"

    @property
    def output_filename(self) -> str:
        return f"{self.template_type.value}.pdf"

    @property
    def template_key(self) -> str:
        return f"{TEMPLATES_PREFIX}/{self.template_filename}"

    def output_key(self, event_id: str) -> str:
        return f"{self.folder(event_id)}/{self.output_filename}"

    def skipped_key(self, event_id: str) -> str:
        base = self.output_filename[: -len(".pdf")]
        return f"{self.folder(event_id)}/{base}-skipped.json"


def _spec(t, folder, w_mm, h_mm, bleed, font, w_pt, h_pt, required=True) -> TemplateSpec:
    return TemplateSpec(t, folder, w_mm, h_mm, bleed, font, w_pt, h_pt, required)

T = TemplateType
F = FontName

TEMPLATE_SPECS: Dict[TemplateType, TemplateSpec] = {
    # DIN Long landscape 210 x 105 mm
    T.FLYER1: _spec(T.FLYER1, event_flyers_folder, 210, 105, 3, F.FREDOKA, 595, 298),
    T.FLYER2: _spec(T.FLYER2, event_flyers_folder, 210, 105, 3, F.FREDOKA, 595, 298),
    # A5 portrait 148 x 210 mm
    T.FLYER3: _spec(T.FLYER3, event_flyers_folder, 148, 210, 3, F.FREDOKA, 420, 595),
    T.FLYER1_BACK: _spec(T.FLYER1_BACK, event_flyers_folder, 210, 105, 3, F.FREDOKA, 595, 298),
    T.FLYER2_BACK: _spec(T.FLYER2_BACK, event_flyers_folder, 210, 105, 3, F.FREDOKA, 595, 298),
    T.FLYER3_BACK: _spec(T.FLYER3_BACK, event_flyers_folder, 148, 210, 3, F.FREDOKA, 420, 595),
    # 38mm button; the 12mm bleed is already part of the 50mm artwork
    T.BUTTON: _spec(T.BUTTON, event_printables_folder, 50, 50, 0, F.FREDOKA, 142, 142),
    # A3. Clothing templates are optional, a blank page is used when absent.
    T.TSHIRT_PRINT: _spec(T.TSHIRT_PRINT, event_printables_folder, 297, 420, 3,
                          F.SPRINGWOOD_DISPLAY, 842, 1191, required=False),
    T.HOODIE_PRINT: _spec(T.HOODIE_PRINT, event_printables_folder, 297, 420, 3,
                          F.SPRINGWOOD_DISPLAY, 842, 1191, required=False),
    T.MINICARD: _spec(T.MINICARD, event_minicards_folder, 210, 105, 3, F.FREDOKA, 595, 298),
    T.CD_JACKET: _spec(T.CD_JACKET, event_cd_jacket_folder, 120, 120, 3, F.FREDOKA, 340, 340),
    # Customer previews, not print files
    T.MOCK_TSHIRT: _spec(T.MOCK_TSHIRT, event_mockups_folder, 210, 297, 0, F.FREDOKA, 595, 842),
    T.MOCK_HOODIE: _spec(T.MOCK_HOODIE, event_mockups_folder, 210, 297, 0, F.FREDOKA, 595, 842),
}

assert set(TEMPLATE_SPECS) == set(TemplateType), "every TemplateType needs a TemplateSpec"

FLYER_FRONT_TYPES = (T.FLYER1, T.FLYER2, T.FLYER3)
FLYER_BACK_TYPES = (T.FLYER1_BACK, T.FLYER2_BACK, T.FLYER3_BACK)
MOCKUP_TYPES = (T.MOCK_TSHIRT, T.MOCK_HOODIE)
LOGO_TYPES = (T.MINICARD, T.CD_JACKET)

GENERATION_ORDER: List[TemplateType] = [
    *FLYER_FRONT_TYPES,
    *FLYER_BACK_TYPES,
    T.BUTTON,
    T.TSHIRT_PRINT,
    T.HOODIE_PRINT,
    T.MINICARD,
    T.CD_JACKET,
    *MOCKUP_TYPES,
]

assert sorted(GENERATION_ORDER) == sorted(TemplateType)

# Editor names that differ from the stored template names
EDITOR_TYPE_ALIASES: Dict[str, TemplateType] = {
    "tshirt": T.TSHIRT_PRINT,
    "hoodie": T.HOODIE_PRINT,
}
STORE_TO_EDITOR_NAMES: Dict[TemplateType, str] = {v: k for k, v in EDITOR_TYPE_ALIASES.items()}


# --- Fixed text placements (school name, event date) ---

def _text(x, y, size, max_width, color=DEFAULT_COLOR) -> TextPlacement:
    return TextPlacement(x=x, y=y, font_size=size, max_width=max_width, color=color)

SCHOOL_NAME_PLACEMENTS: Dict[TemplateType, TextPlacement] = {
    T.FLYER1: _text(298, 250, 20, 500, BRAND_COLOR),
    T.FLYER2: _text(298, 250, 20, 500, BRAND_COLOR),
    T.FLYER3: _text(210, 550, 22, 380, BRAND_COLOR),
    T.BUTTON: _text(71, 85, 10, 90),
    T.TSHIRT_PRINT: _text(421, 950, 36, 700, TEAL_COLOR),
    T.HOODIE_PRINT: _text(421, 950, 36, 700, TEAL_COLOR),
    T.MINICARD: _text(298, 200, 16, 450),
    T.CD_JACKET: _text(170, 280, 14, 280),
    T.MOCK_TSHIRT: _text(297.5, 450, 20, 250),
    T.MOCK_HOODIE: _text(297.5, 450, 20, 250),
}

DATE_PLACEMENTS: Dict[TemplateType, TextPlacement] = {
    T.FLYER1: _text(298, 220, 14, 400),
    T.FLYER2: _text(298, 220, 14, 400),
    T.FLYER3: _text(210, 515, 16, 300),
    T.BUTTON: _text(71, 57, 8, 80),
    T.TSHIRT_PRINT: _text(421, 900, 24, 500, TEAL_COLOR),
    T.HOODIE_PRINT: _text(421, 900, 24, 500, TEAL_COLOR),
    T.MINICARD: _text(298, 175, 12, 400),
    T.CD_JACKET: _text(170, 258, 12, 240),
}

LOGO_PLACEMENTS: Dict[TemplateType, ImagePlacement] = {
    T.MINICARD: ImagePlacement(x=248, y=220, width=100, height=60, fit="contain"),
    T.CD_JACKET: ImagePlacement(x=120, y=150, width=100, height=100, fit="contain"),
}

QR_PLACEMENTS: Dict[TemplateType, QrPlacement] = {
    # Fronts: bottom right corner
    T.FLYER1: QrPlacement(490, 30, 70, caption=_text(525, 15, 7, None)),
    T.FLYER2: QrPlacement(490, 30, 70, caption=_text(525, 15, 7, None)),
    T.FLYER3: QrPlacement(320, 30, 80, caption=_text(360, 15, 8, None)),
    # Backs: centered and larger
    T.FLYER1_BACK: QrPlacement(262, 114, 100, caption=_text(312, 95, 10, None)),
    T.FLYER2_BACK: QrPlacement(262, 114, 100, caption=_text(312, 95, 10, None)),
    T.FLYER3_BACK: QrPlacement(160, 247, 120, caption=_text(220, 225, 10, None)),
}


# --- Lookups and predicates ---

def get_template_spec(template_type: TemplateType) -> TemplateSpec:
    return TEMPLATE_SPECS[TemplateType(template_type)]

def is_back_variant(template_type: TemplateType) -> bool:
    return TemplateType(template_type) in FLYER_BACK_TYPES

def is_mockup(template_type: TemplateType) -> bool:
    return TemplateType(template_type) in MOCKUP_TYPES

def requires_logo(template_type: TemplateType) -> bool:
    return TemplateType(template_type) in LOGO_TYPES

def supports_qr_code(template_type: TemplateType) -> bool:
    return TemplateType(template_type) in QR_PLACEMENTS

def get_default_placement(template_type: TemplateType) -> Optional[TextPlacement]:
    """School-name placement for a type, None for back sides."""
    if is_back_variant(template_type):
        return None
    return SCHOOL_NAME_PLACEMENTS[TemplateType(template_type)]

def get_date_placement(template_type: TemplateType) -> Optional[TextPlacement]:
    return DATE_PLACEMENTS.get(TemplateType(template_type))

def get_logo_placement(template_type: TemplateType) -> Optional[ImagePlacement]:
    return LOGO_PLACEMENTS.get(TemplateType(template_type))

def get_qr_placement(template_type: TemplateType) -> Optional[QrPlacement]:
    return QR_PLACEMENTS.get(TemplateType(template_type))

def resolve_template_type(name: str) -> TemplateType:
    """Accept stored names ("tshirt-print") and editor names ("tshirt")."""
    if name in EDITOR_TYPE_ALIASES:
        return EDITOR_TYPE_ALIASES[name]
    return TemplateType(name)


# --- Units and formatting ---

def mm_to_points(mm: float) -> float:
    return mm * POINTS_PER_INCH / MM_PER_INCH

def bleed_points(mm: float) -> float:
    return mm_to_points(mm)

def format_german_date(iso_date: str) -> str:
    """Render "2025-06-12" (optionally with a time part) as "12. Juni 2025".

    Only the calendar date is read; no timezone conversion happens, so a
    late-evening UTC timestamp never shifts to the next day.
    """
    if not iso_date or len(iso_date) < 10:
        raise ValueError(f"Not an ISO date: {iso_date!r}")
    d = date.fromisoformat(iso_date[:10])
    return f"{d.day}. {GERMAN_MONTHS[d.month - 1]} {d.year}"

def build_qr_url(domain: str, access_code) -> str:
    return f"https://{domain}/e/{access_code}"

def qr_caption(url: str) -> str:
    for scheme in ("https://", "http://"):
        if url.startswith(scheme):
            return url[len(scheme):]
    return url


# --- Editor (CSS pixel) conversions ---

def hex_to_rgb(value: str) -> Color:
    h = (value or "").lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    if len(h) != 6:
        return DEFAULT_COLOR
    try:
        r, g, b = (int(h[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return DEFAULT_COLOR
    return (r / 255, g / 255, b / 255)

def css_to_pdf_position(css_x: float, css_y: float, pdf_height: float, scale: float) -> Tuple[float, float]:
    # CSS has a top-left origin, PDF a bottom-left one
    return (css_x / scale, pdf_height - css_y / scale)

def css_to_pdf_size(css_width: float, css_height: float, scale: float) -> Tuple[float, float]:
    return (css_width / scale, css_height / scale)
