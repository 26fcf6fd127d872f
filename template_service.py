import re
import logging
import zipfile
import zlib
from typing import Any, Dict, List, Optional

from lxml import etree
from pptx.dml.color import RGBColor

from models import TemplateStyle, ThemeColors, ThemeFonts

logger = logging.getLogger(__name__)

THEME_PATH = "ppt/theme/theme1.xml"
LAYOUT_PATTERN = re.compile(r"^ppt/slideLayouts/slideLayout(\d+)\.xml$")
MASTER_PATTERN = re.compile(r"^ppt/slideMasters/slideMaster(\d+)\.xml$")
HEX_COLOR = re.compile(r"^[0-9A-Fa-f]{6}$")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".svg")
# Raised by ZipFile.read for damaged, encrypted or oddly compressed members
MEMBER_READ_ERRORS = (KeyError, zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError)
PART_ERRORS = (etree.XMLSyntaxError, ValueError) + MEMBER_READ_ERRORS

NS = {
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "p": "http://schemas.openxmlformats.org/presentationml/2006/main",
}


def default_template_style() -> TemplateStyle:
    return TemplateStyle()


def hex_to_rgb(value: str) -> RGBColor:
    """'#1f4e79' or '1F4E79' -> RGBColor."""
    return RGBColor.from_string(value.lstrip("#").upper())


# --- Theme ---
def _slot_color(color_scheme, slot: str) -> Optional[str]:
    """Resolves a colour-scheme slot such as dk1 or accent3 to '#rrggbb'."""
    element = color_scheme.find(f"a:{slot}", NS)
    if element is None:
        return None
    srgb = element.find("a:srgbClr", NS)
    if srgb is not None and HEX_COLOR.match(srgb.get("val", "")):
        return "#" + srgb.get("val").lower()
    # System colours (windowText, window) carry their last rendered value
    sys_clr = element.find("a:sysClr", NS)
    if sys_clr is not None and HEX_COLOR.match(sys_clr.get("lastClr", "")):
        return "#" + sys_clr.get("lastClr").lower()
    return None


def extract_colors(theme_root) -> ThemeColors:
    colors = ThemeColors()
    color_scheme = theme_root.find("a:themeElements/a:clrScheme", NS)
    if color_scheme is None:
        logger.warning("Theme has no colour scheme, using default colours")
        return colors

    if color_scheme.get("name"):
        colors.scheme = color_scheme.get("name")

    primary = _slot_color(color_scheme, "dk1") or _slot_color(color_scheme, "accent1")
    if primary:
        colors.primary = primary

    slots = {
        "secondary": "accent2",
        "accent1": "accent1",
        "accent2": "accent2",
        "accent3": "accent3",
        "accent4": "accent4",
        "accent5": "accent5",
        "accent6": "accent6",
        "background": "lt1",
        "text": "dk1",
    }
    for field, slot in slots.items():
        value = _slot_color(color_scheme, slot)
        if value:
            setattr(colors, field, value)
    return colors


def extract_fonts(theme_root) -> ThemeFonts:
    fonts = ThemeFonts()
    font_scheme = theme_root.find("a:themeElements/a:fontScheme", NS)
    if font_scheme is None:
        logger.warning("Theme has no font scheme, using default fonts")
        return fonts

    major = font_scheme.find("a:majorFont/a:latin", NS)
    minor = font_scheme.find("a:minorFont/a:latin", NS)
    if major is not None and major.get("typeface"):
        fonts.title = major.get("typeface")
        fonts.heading = major.get("typeface")
    if minor is not None and minor.get("typeface"):
        fonts.body = minor.get("typeface")
    return fonts


# --- Layouts, masters, images ---
def _summarize_part(name: str, xml_bytes: bytes) -> Dict[str, Any]:
    root = etree.fromstring(xml_bytes)
    c_sld = root.find("p:cSld", NS)
    placeholders = []
    for ph in root.iterfind(".//p:nvPr/p:ph", NS):
        placeholders.append(ph.get("type", "obj"))
    return {
        "name": name,
        "displayName": c_sld.get("name", "") if c_sld is not None else "",
        "placeholders": placeholders,
    }


def _collect_parts(archive: zipfile.ZipFile, pattern) -> List[Dict[str, Any]]:
    matches = []
    for name in archive.namelist():
        m = pattern.match(name)
        if m:
            matches.append((int(m.group(1)), name))

    parts = []
    for _, name in sorted(matches):
        try:
            parts.append(_summarize_part(name, archive.read(name)))
        except PART_ERRORS as e:
            logger.warning(f"Could not parse {name}: {e}")
    return parts


def extract_images(archive: zipfile.ZipFile) -> List[str]:
    return [name for name in archive.namelist() if name.lower().endswith(IMAGE_EXTENSIONS)]


# --- Main entry point ---
def extract_template_style(template_path: str) -> TemplateStyle:
    """
    Reads the colour/font palette, layouts, masters and image manifest
    from a .pptx/.potx package. Never raises for a bad template: anything
    that cannot be read falls back to defaults.
    """
    try:
        archive = zipfile.ZipFile(template_path)
    except (OSError, zipfile.BadZipFile) as e:
        logger.warning(f"Could not open template {template_path}: {e}. Using default style.")
        return default_template_style()

    with archive:
        style = default_template_style()
        try:
            theme_root = etree.fromstring(archive.read(THEME_PATH))
            style.colors = extract_colors(theme_root)
            style.fonts = extract_fonts(theme_root)
        except KeyError:
            logger.warning(f"Template has no {THEME_PATH}, using default colours and fonts")
        except PART_ERRORS as e:
            logger.warning(f"Could not read template theme: {e}. Using default colours and fonts")

        style.layouts = _collect_parts(archive, LAYOUT_PATTERN)
        style.masterSlides = _collect_parts(archive, MASTER_PATTERN)
        style.images = extract_images(archive)

    logger.info(
        f"Extracted template style: scheme='{style.colors.scheme}', "
        f"fonts={style.fonts.title}/{style.fonts.body}, "
        f"{len(style.layouts)} layouts, {len(style.masterSlides)} masters, {len(style.images)} images"
    )
    return style
