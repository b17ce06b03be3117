"""
Tests for HTML body processing and signature isolation.
"""

import pytest

from signature_extractor import MAX_SIGNATURE_LENGTH, SignatureExtractor


@pytest.fixture
def extractor():
    return SignatureExtractor()


class TestHtmlToText:
    def test_blocks_and_breaks_become_newlines(self, extractor):
        html = "<p>Hello&nbsp;there</p><p>Bye<br>John</p>"
        assert extractor.html_to_text(html) == "Hello there\nBye\nJohn"

    def test_scripts_and_styles_dropped(self, extractor):
        html = "<style>p{color:red}</style><script>var x = 1;</script><div>Hi</div>"
        assert extractor.html_to_text(html) == "Hi"

    def test_plain_text_passes_through(self, extractor):
        assert extractor.html_to_text("line one\n\n\n\nline two") == "line one\n\nline two"

    def test_empty(self, extractor):
        assert extractor.html_to_text(None) == ""


class TestExtractSignature:
    def test_from_closing_phrase(self, extractor):
        body = "Hi Bob,\nSee attached.\nBest regards,\nJohn Smith"
        assert extractor.extract_signature(body) == "Best regards,\nJohn Smith"

    def test_last_marker_wins(self, extractor):
        body = "Thanks for the update.\nLet's talk Monday.\nCordialement,\nMarie"
        assert extractor.extract_signature(body) == "Cordialement,\nMarie"

    def test_truncated_to_500_characters(self, extractor):
        signature = extractor.extract_signature("Hello\nRegards\n" + "x" * 600)

        assert len(signature) == MAX_SIGNATURE_LENGTH == 500
        assert signature.startswith("Regards")

    def test_fallback_to_last_four_lines(self, extractor):
        assert extractor.extract_signature("a\nb\nc\nd\ne") == "b\nc\nd\ne"

    def test_short_body_without_marker(self, extractor):
        assert extractor.extract_signature("one\ntwo\nthree") is None

    def test_empty(self, extractor):
        assert extractor.extract_signature("") is None


class TestHasSignature:
    @pytest.mark.parametrize("text", ["Sent from my iPhone", "Bien cordialement", "hi\n--\nJohn"])
    def test_markers(self, extractor, text):
        assert extractor.has_signature(text) is True

    @pytest.mark.parametrize("text", [None, "", "see you at noon"])
    def test_no_markers(self, extractor, text):
        assert extractor.has_signature(text) is False


class TestProcessHtmlBody:
    def test_returns_text_and_signature(self, extractor):
        text, signature = extractor.process_html_body("<p>Hi</p><p>Regards,<br>Ann Lee</p>")

        assert text == "Hi\nRegards,\nAnn Lee"
        assert signature == "Regards,\nAnn Lee"

    def test_empty(self, extractor):
        assert extractor.process_html_body(None) == ("", None)
