"""
Unit Tests for the PDF report renderer.

Content is checked on the built flowables; rendering is checked on the bytes
that reach the sink.
"""
import re
import shutil
from pathlib import Path

import pytest
import reportlab

import config
import pdf_report
from errors import AssetMissing, StreamWriteError
from models import ReportRequest
from pdf_report import (
    CLOSING_DOES_NOT_MEET,
    CLOSING_MEETS,
    FAMILY_HEADER,
    NO_RELATIVES,
    TITLE,
    BufferSink,
    ReportAssets,
    ReportRenderer,
    build_family_section,
    build_story,
    build_styles,
    group_relatives,
    load_assets,
)
from reportlab.platypus import Paragraph

PAGE_OBJECT = re.compile(rb"/Type /Page[^s]")


def story_texts(story) -> list:
    return [f.getPlainText() for f in story if isinstance(f, Paragraph)]


def group_lines(story) -> list:
    return [text for text in story_texts(story) if text.startswith("- ")]


class FailingSink:
    def __init__(self, fail_on: str):
        self.fail_on = fail_on
        self.data = b""

    def write(self, data):
        if self.fail_on == "write":
            raise OSError("connection reset by peer")
        self.data += data

    def close(self):
        if self.fail_on == "close":
            raise OSError("broken pipe")


@pytest.fixture
def renderer() -> ReportRenderer:
    return ReportRenderer()


@pytest.fixture
def assets() -> ReportAssets:
    return load_assets(config.REPORT_ASSETS_DIR, config.REPORT_FONT_REGULAR, config.REPORT_FONT_BOLD)


@pytest.fixture
def styles(assets):
    return build_styles(assets.regular_font, assets.bold_font)


class TestGroupRelatives:
    """Grouping is by strictly consecutive runs of the same relation."""

    def test_empty(self):
        assert group_relatives([]) == []

    def test_single_relative(self, relative):
        mother = relative("mother")
        assert group_relatives([mother]) == [("mother", [mother])]

    def test_consecutive_entries_share_a_group(self, relative):
        a, b = relative("mother", "breast cancer", 50), relative("mother", "ovarian cancer", 62)
        assert group_relatives([a, b]) == [("mother", [a, b])]

    def test_last_group_is_kept(self, relative):
        relatives = [relative("mother"), relative("sister"), relative("sister", "ovarian cancer", 40)]
        groups = group_relatives(relatives)

        assert [name for name, _ in groups] == ["mother", "sister"]
        assert len(groups[-1][1]) == 2

    def test_non_consecutive_repeat_starts_new_group(self, relative):
        x, y, z = relative("mother", "X"), relative("sister", "Y"), relative("mother", "Z")
        groups = group_relatives([x, y, z])

        assert groups == [("mother", [x]), ("sister", [y]), ("mother", [z])]

    def test_relation_compared_verbatim(self, relative):
        groups = group_relatives([relative("Mother"), relative("mother")])
        assert len(groups) == 2

    def test_order_within_group_preserved(self, relative):
        members = [relative("maternal aunt", f"type {i}", 40 + i) for i in range(5)]
        [(relation, grouped)] = group_relatives(members)

        assert relation == "maternal aunt"
        assert [m.cancer_type for m in grouped] == [f"type {i}" for i in range(5)]


class TestStory:
    """Tests for the document content."""

    def test_reference_example(self, maria_request, styles):
        texts = story_texts(build_story(maria_request, styles))

        assert texts[0] == TITLE
        assert texts[1] == "Sr(a). Maria possui história pessoal de breast cancer at 48, atualmente com 54 anos."
        assert FAMILY_HEADER in texts
        assert group_lines(build_story(maria_request, styles)) == ["- mother: breast cancer aos 50 anos."]
        assert "atende aos critérios" in texts[-1]
        assert "não atende" not in texts[-1]

    def test_title_uses_bold_font_and_is_centered(self, maria_request, styles, assets):
        title = build_story(maria_request, styles)[0]
        assert title.style.fontName == assets.bold_font
        assert title.style.alignment == pdf_report.TA_CENTER

    def test_empty_relatives_gives_only_fixed_sentence(self, styles):
        section = build_family_section([], styles)

        assert story_texts(section) == [NO_RELATIVES]
        assert FAMILY_HEADER not in story_texts(section)

    def test_one_line_per_group(self, relative, styles):
        relatives = [
            relative("mother", "breast cancer", 50),
            relative("mother", "ovarian cancer", 62),
            relative("maternal aunt", "colon cancer", 58),
            relative("sister", "breast cancer", 39),
        ]
        lines = group_lines(build_family_section(relatives, styles))

        assert lines == [
            "- mother: breast cancer aos 50 anos, ovarian cancer aos 62 anos.",
            "- maternal aunt: colon cancer aos 58 anos.",
            "- sister: breast cancer aos 39 anos.",
        ]

    def test_scattered_relation_gives_separate_lines(self, relative, styles):
        relatives = [relative("mother", "X", 1), relative("sister", "Y", 2), relative("mother", "Z", 3)]
        lines = group_lines(build_family_section(relatives, styles))

        assert lines == ["- mother: X aos 1 anos.", "- sister: Y aos 2 anos.", "- mother: Z aos 3 anos."]

    def test_empty_personal_history(self, styles):
        request = ReportRequest(subject_name="João", subject_age=30, personal_history="  ")
        texts = story_texts(build_story(request, styles))

        assert texts[1] == "Sr(a). João não possui história pessoal de câncer, atualmente com 30 anos."

    def test_markup_in_user_text_is_escaped(self, relative, styles):
        request = ReportRequest(
            subject_name="Ana & <Bia>",
            subject_age=40,
            personal_history="<b>melanoma</b>",
            relatives=[relative("tio <paterno>", "próstata & rim", 70)],
        )
        texts = story_texts(build_story(request, styles))

        assert "Ana & <Bia>" in texts[1]
        assert "<b>melanoma</b>" in texts[1]
        assert "- tio <paterno>: próstata & rim aos 70 anos." in texts

    @pytest.mark.parametrize("meets", [True, False])
    def test_closing_templates_are_exclusive(self, maria_request, styles, meets):
        request = maria_request.model_copy(update={"meets_referral_criteria": meets})
        story = build_story(request, styles)
        closing = story[-1]
        plain = [Paragraph(t, styles["ReportClosing"]).getPlainText() for t in (CLOSING_MEETS, CLOSING_DOES_NOT_MEET)]

        assert closing.getPlainText() == (plain[0] if meets else plain[1])
        assert sum(text in story_texts(story) for text in plain) == 1
        assert closing.style.alignment == pdf_report.TA_JUSTIFY

    @pytest.mark.parametrize(
        "meets, phrase",
        [(True, "atende aos critérios"), (False, "não atende aos critérios")],
    )
    def test_closing_has_bold_verb_phrase(self, maria_request, styles, assets, meets, phrase):
        request = maria_request.model_copy(update={"meets_referral_criteria": meets})
        closing = build_story(request, styles)[-1]

        bold = "".join(f.text for f in closing.frags if f.fontName == assets.bold_font)
        regular = "".join(f.text for f in closing.frags if f.fontName == assets.regular_font)

        assert bold == phrase
        assert regular.startswith("Baseado nessas informações, o paciente ")


class TestRender:
    """Tests for the full render into a sink."""

    def test_writes_pdf_and_finalizes_sink(self, renderer, maria_request):
        sink = BufferSink()
        renderer.render(maria_request, sink)

        data = sink.getvalue()
        assert data.startswith(b"%PDF-")
        assert data.rstrip().endswith(b"%%EOF")
        assert sink.closed

    def test_embeds_configured_fonts(self, renderer, maria_request):
        sink = BufferSink()
        renderer.render(maria_request, sink)

        data = sink.getvalue()
        assert b"BitstreamVeraSans-Bold" in data
        assert b"BitstreamVeraSans-Roman" in data

    def test_output_is_deterministic(self, renderer, maria_request):
        first, second = BufferSink(), BufferSink()
        renderer.render(maria_request, first)
        renderer.render(maria_request.model_copy(), second)

        assert first.getvalue() == second.getvalue()

    def test_request_is_not_mutated(self, renderer, maria_request):
        before = maria_request.model_dump()
        renderer.render(maria_request, BufferSink())
        assert maria_request.model_dump() == before

    def test_watermark_drawn_on_every_page(self, renderer, relative, monkeypatch):
        calls = []
        original = pdf_report.page_decorator

        def counting_decorator(watermark):
            draw = original(watermark)

            def wrapped(canvas, doc):
                calls.append(doc.page)
                draw(canvas, doc)
            return wrapped

        monkeypatch.setattr(pdf_report, "page_decorator", counting_decorator)

        relatives = [relative("mother" if i % 2 else "sister", "breast cancer", 40 + i % 30) for i in range(120)]
        request = ReportRequest(subject_name="Maria", subject_age=54, relatives=relatives)
        sink = BufferSink()
        renderer.render(request, sink)

        pages = len(PAGE_OBJECT.findall(sink.getvalue()))
        assert pages > 1
        assert len(calls) == pages
        assert calls == sorted(set(calls))

    def test_missing_watermark_writes_nothing(self, maria_request, tmp_path):
        sink = BufferSink()
        with pytest.raises(AssetMissing) as exc_info:
            ReportRenderer(assets_dir=tmp_path).render(maria_request, sink)

        assert exc_info.value.asset == pdf_report.WATERMARK_FILE
        assert sink.getvalue() == b""
        assert not sink.closed

    def test_missing_font_writes_nothing(self, maria_request, tmp_path):
        shutil.copy(config.REPORT_ASSETS_DIR / pdf_report.WATERMARK_FILE, tmp_path)
        sink = BufferSink()

        with pytest.raises(AssetMissing) as exc_info:
            ReportRenderer(assets_dir=tmp_path, regular_font="NoSuchFont.ttf").render(maria_request, sink)

        assert exc_info.value.asset == "NoSuchFont.ttf"
        assert exc_info.value.to_dict()["error"] == "ASSET_MISSING"
        assert sink.getvalue() == b""

    def test_corrupt_watermark_is_asset_missing(self, maria_request, tmp_path):
        (tmp_path / pdf_report.WATERMARK_FILE).write_bytes(b"not a png")
        with pytest.raises(AssetMissing):
            ReportRenderer(assets_dir=tmp_path).render(maria_request, BufferSink())

    def test_failing_write_raises_stream_error(self, renderer, maria_request):
        with pytest.raises(StreamWriteError) as exc_info:
            renderer.render(maria_request, FailingSink("write"))

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_failing_close_raises_stream_error(self, renderer, maria_request):
        sink = FailingSink("close")
        with pytest.raises(StreamWriteError) as exc_info:
            renderer.render(maria_request, sink)

        assert sink.data.startswith(b"%PDF-")
        assert exc_info.value.details["bytes_written"] == len(sink.data)

    def test_closed_sink_rejects_writes(self, renderer, maria_request):
        sink = BufferSink()
        sink.close()
        with pytest.raises(StreamWriteError):
            renderer.render(maria_request, sink)


class TestLoadAssets:

    def test_registered_fonts_are_the_configured_files(self, assets):
        assert assets.regular_font.startswith("Report-Vera-")
        assert assets.bold_font.startswith("Report-VeraBd-")
        assert assets.regular_font != assets.bold_font

    def test_same_file_name_in_another_dir_gets_its_own_font(self, assets, tmp_path):
        bundled = Path(reportlab.__file__).parent / "fonts"
        shutil.copy(bundled / "Vera.ttf", tmp_path)
        shutil.copy(bundled / "VeraBd.ttf", tmp_path)
        shutil.copy(config.REPORT_ASSETS_DIR / pdf_report.WATERMARK_FILE, tmp_path)

        local = load_assets(tmp_path, "Vera.ttf", "VeraBd.ttf")

        assert local.regular_font != assets.regular_font
        assert local.bold_font != assets.bold_font
        assert local.regular_font.startswith("Report-Vera-")
