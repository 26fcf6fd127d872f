# text2deck/models.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

# --- LLM output ---
class SlideContent(BaseModel):
    title: str
    content: List[str]
    speakerNotes: Optional[str] = None

class PresentationStructure(BaseModel):
    title: str
    slides: List[SlideContent]

# --- Template style ---
class ThemeColors(BaseModel):
    primary: str = "#1f4e79"
    secondary: str = "#70ad47"
    accent1: str = "#4472c4"
    accent2: str = "#e7e6e6"
    accent3: str = "#a5a5a5"
    accent4: str = "#ffc000"
    accent5: str = "#5b9bd5"
    accent6: str = "#70ad47"
    background: str = "#ffffff"
    text: str = "#000000"
    scheme: str = "default"

class ThemeFonts(BaseModel):
    title: str = "Calibri"
    body: str = "Calibri"
    heading: str = "Calibri"
    titleSize: int = 44
    bodySize: int = 18
    headingSize: int = 24

class TemplateStyle(BaseModel):
    colors: ThemeColors = Field(default_factory=ThemeColors)
    fonts: ThemeFonts = Field(default_factory=ThemeFonts)
    layouts: List[Dict[str, Any]] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    masterSlides: List[Dict[str, Any]] = Field(default_factory=list)

# --- API ---
class SlidePreview(BaseModel):
    title: str
    content: List[str]
    speakerNotes: Optional[str] = None
    slideNumber: int

class GenerationResponse(BaseModel):
    success: bool
    downloadUrl: Optional[str] = None
    preview: Optional[List[SlidePreview]] = None
    error: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    port: int
