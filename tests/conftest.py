"""Shared fixtures building miniature corpora on disk."""

from __future__ import annotations

from pathlib import Path

import pytest

from canonfinder.config import AppConfig

CBETA_T0001 = """<?xml version="1.0" encoding="UTF-8"?>
<TEI xmlns="http://www.tei-c.org/ns/1.0" xml:id="T01n0001">
<teiHeader>
<fileDesc>
<titleStmt>
<title xml:lang="en">Taisho Tripitaka, Electronic version, No. 1</title>
<title xml:lang="zh-Hant">長阿含經</title>
<author>佛陀耶舍</author>
<respStmt><resp>譯</resp><name>竺佛念</name></respStmt>
</titleStmt>
</fileDesc>
<encodingDesc>
<charDecl>
<char xml:id="CB00001"><charName>CJK glyph</charName><mapping type="unicode">U+4F5B</mapping></char>
</charDecl>
</encodingDesc>
</teiHeader>
<text><body>
<juan fun="open" n="001"><jhead><title>長阿含經</title>卷第一</jhead></juan>
<div type="jing" n="1">
<head>大本經</head>
<p><lb n="0001a01"/>如是我聞<lb n="0001a02"/>一時<g ref="#CB00001">X</g>在舍衛國<note place="inline">校勘</note></p>
</div>
<juan fun="close" n="001"/>
<juan fun="open" n="002"><jhead>卷第二</jhead></juan>
<p><lb n="0002a01"/>遊行經第二</p>
<juan fun="close" n="002"/>
</body></text>
</TEI>
"""

CBETA_T0003 = """<?xml version="1.0" encoding="UTF-8"?>
<TEI xmlns="http://www.tei-c.org/ns/1.0" xml:id="T01n0003">
<teiHeader>
<fileDesc><titleStmt><title xml:lang="zh-Hant">七佛經</title></titleStmt></fileDesc>
</teiHeader>
<text><body></body></text>
</TEI>
"""

CBETA_X0002 = """<?xml version="1.0" encoding="UTF-8"?>
<TEI xmlns="http://www.tei-c.org/ns/1.0" xml:id="X01n0002">
<teiHeader>
<fileDesc><titleStmt><title xml:lang="zh-Hant">圓覺經略疏</title></titleStmt></fileDesc>
</teiHeader>
<text><body>
<juan fun="open" n="001"/>
<p>如是我聞一時婆伽婆</p>
<p>如是我聞者</p>
<juan fun="close" n="001"/>
</body></text>
</TEI>
"""

TIPITAKA_DN = """<?xml version="1.0" encoding="UTF-8"?>
<TEI.2><teiHeader></teiHeader><text><body>
<p rend="nikaya">Dīghanikāyo</p>
<head rend="book">Sīlakkhandhavaggapāḷi</head>
<div id="dn1_1" n="dn1_1" type="sutta">
<head rend="chapter">1. Brahmajālasuttaṃ</head>
<p rend="bodytext" n="1">Evaṃ me sutaṃ ekaṃ samayaṃ bhagavā antarā ca rājagahaṃ</p>
</div>
</body></text></TEI.2>
"""

TIPITAKA_TOC = """<?xml version="1.0" encoding="UTF-8"?>
<tree><tree text="Dīghanikāyo" src="s0101m.mul.xml"/></tree>
"""


def write(path: Path, text: str, encoding: str = "utf-8") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode(encoding))
    return path


@pytest.fixture
def cbeta_home(tmp_path: Path) -> Path:
    """A data home with three CBETA files across two canons."""
    home = tmp_path / "home"
    root = home / "xml-p5"
    write(root / "T" / "T01" / "T01n0001.xml", CBETA_T0001)
    write(root / "T" / "T01" / "T01n0003.xml", CBETA_T0003)
    write(root / "X" / "X01" / "X01n0002.xml", CBETA_X0002)
    return home


@pytest.fixture
def tipitaka_home(tmp_path: Path) -> Path:
    """A data home with one Tipitaka book and its table of contents."""
    home = tmp_path / "home"
    root = home / "tipitaka-xml" / "romn"
    write(root / "s0101m.mul.xml", TIPITAKA_DN)
    write(root / "s0101m.mul.toc.xml", TIPITAKA_TOC)
    return home


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(home: Path) -> AppConfig:
        return AppConfig(home=home, cache_dir=tmp_path / "cache", workers=2)

    return _make
