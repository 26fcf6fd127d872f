"""
Shared fixtures: hand-built OOXML templates and a sample slide structure.
"""

import zipfile

import pytest
from pptx import Presentation

from models import PresentationStructure, SlideContent

THEME_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<a:theme xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" name="Harbor">
  <a:themeElements>
    <a:clrScheme name="Harbor">
      <a:dk1><a:srgbClr val="112233"/></a:dk1>
      <a:lt1><a:sysClr val="window" lastClr="FAFAFA"/></a:lt1>
      <a:dk2><a:srgbClr val="44546A"/></a:dk2>
      <a:lt2><a:srgbClr val="E7E6E6"/></a:lt2>
      <a:accent1><a:srgbClr val="AA0000"/></a:accent1>
      <a:accent2><a:srgbClr val="00BB00"/></a:accent2>
      <a:accent3><a:srgbClr val="0000CC"/></a:accent3>
      <a:accent4><a:srgbClr val="DDDD00"/></a:accent4>
      <a:accent5><a:srgbClr val="00EEEE"/></a:accent5>
      <a:accent6><a:srgbClr val="FF00FF"/></a:accent6>
      <a:hlink><a:srgbClr val="0563C1"/></a:hlink>
      <a:folHlink><a:srgbClr val="954F72"/></a:folHlink>
    </a:clrScheme>
    <a:fontScheme name="Harbor">
      <a:majorFont><a:latin typeface="Georgia"/><a:ea typeface=""/><a:cs typeface=""/></a:majorFont>
      <a:minorFont><a:latin typeface="Verdana"/><a:ea typeface=""/><a:cs typeface=""/></a:minorFont>
    </a:fontScheme>
  </a:themeElements>
</a:theme>
"""

LAYOUT_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<p:sldLayout xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main"
             xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main">
  <p:cSld name="{name}">
    <p:spTree>
      <p:sp><p:nvSpPr><p:cNvPr id="2" name="Title"/><p:cNvSpPr/><p:nvPr><p:ph type="title"/></p:nvPr></p:nvSpPr></p:sp>
      <p:sp><p:nvSpPr><p:cNvPr id="3" name="Body"/><p:cNvSpPr/><p:nvPr><p:ph idx="1"/></p:nvPr></p:nvSpPr></p:sp>
    </p:spTree>
  </p:cSld>
</p:sldLayout>
"""

MASTER_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<p:sldMaster xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main"
             xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main">
  <p:cSld><p:spTree/></p:cSld>
</p:sldMaster>
"""


def write_package(path, members, compression=zipfile.ZIP_STORED):
    with zipfile.ZipFile(path, "w", compression) as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return str(path)


def corrupt_member(path, name):
    """Overwrites the start of a deflated member so that inflating it fails."""
    with zipfile.ZipFile(path) as archive:
        offset = archive.getinfo(name).header_offset
    with open(path, "rb") as f:
        data = bytearray(f.read())
    # Local file header: 30 fixed bytes, then the file name and extra field
    name_len = int.from_bytes(data[offset + 26:offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28:offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    # 0xFF opens a deflate block with the reserved block type
    data[start:start + 4] = b"\xff\xff\xff\xff"
    with open(path, "wb") as f:
        f.write(data)
    return str(path)


@pytest.fixture
def themed_template(tmp_path):
    """A minimal package carrying a theme, two layouts, a master and a picture."""
    return write_package(tmp_path / "harbor.pptx", {
        "[Content_Types].xml": "<Types/>",
        "ppt/theme/theme1.xml": THEME_XML,
        "ppt/slideLayouts/slideLayout10.xml": LAYOUT_XML.format(name="Blank"),
        "ppt/slideLayouts/slideLayout2.xml": LAYOUT_XML.format(name="Title and Content"),
        "ppt/slideLayouts/_rels/slideLayout2.xml.rels": "<Relationships/>",
        "ppt/slideMasters/slideMaster1.xml": MASTER_XML,
        "ppt/media/image1.PNG": b"\x89PNG fake",
        "ppt/media/logo.svg": "<svg/>",
    })


@pytest.fixture
def themeless_template(tmp_path):
    return write_package(tmp_path / "bare.potx", {
        "[Content_Types].xml": "<Types/>",
        "ppt/slideLayouts/slideLayout1.xml": LAYOUT_XML.format(name="Title Slide"),
    })


@pytest.fixture
def stock_template(tmp_path):
    """The default deck python-pptx ships with."""
    path = tmp_path / "stock.pptx"
    Presentation().save(str(path))
    return str(path)


@pytest.fixture
def sample_structure():
    return PresentationStructure(
        title="Quarterly Review",
        slides=[
            SlideContent(
                title="Highlights",
                content=["Revenue up **12%**", "Two new markets", "Churn flat"],
                speakerNotes="Open with the revenue number.",
            ),
            SlideContent(title="Next Steps", content=["Hire two engineers", "Ship v2"]),
        ],
    )
