import re
import logging

from lxml import etree
from pptx import Presentation
from pptx.oxml.ns import qn
from pptx.util import Inches, Pt
from pptx.enum.text import PP_ALIGN, MSO_ANCHOR
from pptx.enum.shapes import MSO_SHAPE

from models import PresentationStructure, SlideContent, TemplateStyle
from template_service import hex_to_rgb

logger = logging.getLogger(__name__)

# --- 1. Design Constants ---
# Slide Dimensions (16:9)
SLIDE_WIDTH = Inches(10)
SLIDE_HEIGHT = Inches(5.625)
# Margins
MARGIN_LEFT = Inches(0.5)
MARGIN_RIGHT = Inches(0.5)
MARGIN_TOP = Inches(0.5)
MARGIN_BOTTOM = Inches(0.4)
# Font Sizes
TITLE_FONT_SIZE = Pt(32)
# Accent rule under titles
RULE_HEIGHT = Inches(0.06)
BLANK_LAYOUT_INDEX = 6

# --- 2. Helper Functions ---

def add_speaker_notes(slide, notes_text):
    """Adds speaker notes to the slide."""
    if notes_text and notes_text.strip():
        slide.notes_slide.notes_text_frame.text = notes_text


def fill_background(slide, style: TemplateStyle):
    fill = slide.background.fill
    fill.solid()
    fill.fore_color.rgb = hex_to_rgb(style.colors.background)


def add_accent_rule(slide, left, top, width, style: TemplateStyle):
    rule = slide.shapes.add_shape(MSO_SHAPE.RECTANGLE, left, top, width, RULE_HEIGHT)
    rule.fill.solid()
    rule.fill.fore_color.rgb = hex_to_rgb(style.colors.accent1)
    rule.line.fill.background()  # No border
    return rule


def set_bullet(p, color_hex):
    """Turns a plain text-box paragraph into a bulleted one."""
    pPr = p._p.get_or_add_pPr()
    pPr.set("marL", str(Inches(0.3)))
    pPr.set("indent", str(-Inches(0.3)))
    bu_clr = etree.SubElement(pPr, qn("a:buClr"))
    srgb = etree.SubElement(bu_clr, qn("a:srgbClr"))
    srgb.set("val", color_hex.lstrip("#").upper())
    bu_char = etree.SubElement(pPr, qn("a:buChar"))
    bu_char.set("char", "•")


def apply_formatted_text_to_paragraph(p, text, font_name, font_size, color_hex):
    """
    Parses text with **bold** syntax and adds it as runs
    to a paragraph object.
    """
    if not text:
        return
    # Split text by markers, keeping the markers
    parts = re.split(r'(\*\*.*?\*\*)', text)

    for part in parts:
        if not part:
            continue
        run = p.add_run()
        if part.startswith('**') and part.endswith('**') and len(part) > 4:
            run.text = part[2:-2]
            run.font.bold = True
        else:
            run.text = part
        run.font.name = font_name
        run.font.size = font_size
        run.font.color.rgb = hex_to_rgb(color_hex)


def set_title_text(text_frame, text, font_name, font_size, color_hex, alignment=PP_ALIGN.LEFT):
    text_frame.clear()
    text_frame.word_wrap = True
    p = text_frame.paragraphs[0]
    p.alignment = alignment
    run = p.add_run()
    run.text = text or ""
    run.font.name = font_name
    run.font.size = font_size
    run.font.bold = True
    run.font.color.rgb = hex_to_rgb(color_hex)

# --- 3. Slide Drawing Functions ---

def draw_title_slide(slide, title, style: TemplateStyle):
    """Draws the opening slide with the presentation title."""
    title_shape = slide.shapes.add_textbox(
        Inches(1), Inches(2), SLIDE_WIDTH - Inches(2), Inches(1.5)
    )
    title_tf = title_shape.text_frame
    title_tf.vertical_anchor = MSO_ANCHOR.MIDDLE
    set_title_text(
        title_tf, title, style.fonts.title, TITLE_FONT_SIZE, style.colors.primary,
        alignment=PP_ALIGN.CENTER,
    )
    add_accent_rule(slide, Inches(3), Inches(3.6), SLIDE_WIDTH - Inches(6), style)
    logger.debug(f"  - Drawing Title Slide: {title}")


def draw_content_slide(slide, data: SlideContent, style: TemplateStyle):
    """Draws a title plus a bullet list."""
    content_width = SLIDE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT

    title_shape = slide.shapes.add_textbox(MARGIN_LEFT, MARGIN_TOP, content_width, Inches(0.8))
    set_title_text(
        title_shape.text_frame, data.title, style.fonts.title,
        Pt(style.fonts.headingSize), style.colors.primary,
    )
    add_accent_rule(slide, MARGIN_LEFT, MARGIN_TOP + Inches(0.85), Inches(1.5), style)

    body_top = Inches(1.5)
    body_shape = slide.shapes.add_textbox(
        MARGIN_LEFT, body_top, content_width, SLIDE_HEIGHT - body_top - MARGIN_BOTTOM
    )
    body_tf = body_shape.text_frame
    body_tf.clear()  # Clear default paragraph
    body_tf.word_wrap = True
    body_tf.vertical_anchor = MSO_ANCHOR.TOP

    body_size = Pt(style.fonts.bodySize)
    for i, point_text in enumerate(data.content):
        p = body_tf.paragraphs[0] if i == 0 else body_tf.add_paragraph()
        p.space_after = Pt(6)
        set_bullet(p, style.colors.accent1)
        apply_formatted_text_to_paragraph(p, point_text, style.fonts.body, body_size, style.colors.text)

    logger.debug(f"  - Drawing Content Slide: {data.title}")


# --- 4. Main Execution Logic ---

def create_presentation(structure: PresentationStructure, style: TemplateStyle):
    """Creates a new presentation from the slide structure, styled with the template palette."""
    prs = Presentation()
    prs.slide_width = SLIDE_WIDTH
    prs.slide_height = SLIDE_HEIGHT
    blank_layout = prs.slide_layouts[BLANK_LAYOUT_INDEX]

    logger.info(f"Starting presentation generation: '{structure.title}'")
    title_slide = prs.slides.add_slide(blank_layout)
    fill_background(title_slide, style)
    draw_title_slide(title_slide, structure.title, style)

    for i, slide_data in enumerate(structure.slides):
        logger.debug(f"Processing slide {i + 1}: '{slide_data.title}'")
        slide = prs.slides.add_slide(blank_layout)
        fill_background(slide, style)
        draw_content_slide(slide, slide_data, style)
        add_speaker_notes(slide, slide_data.speakerNotes)

    return prs


def save_presentation(structure: PresentationStructure, style: TemplateStyle, output_path: str) -> str:
    prs = create_presentation(structure, style)
    prs.save(output_path)
    logger.info(f"Presentation saved to: {output_path}")
    return output_path
