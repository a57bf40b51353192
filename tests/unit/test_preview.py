"""Unit tests for artifact previews."""

import pytest

from jobsmith.contexts.generation import make_preview


@pytest.mark.unit
def test_preview_first_three_resume_bullets():
    """Test that the first three experience bullets are used."""
    content = {
        "sections": {
            "experience": [
                {"bullets": ["One", "Two"]},
                {"bullets": ["Three", "Four"]},
            ]
        }
    }
    assert make_preview(content) == "• One\n• Two\n• Three"


@pytest.mark.unit
def test_preview_tailored_roles():
    """Test that tailored roles provide bullets too."""
    assert make_preview({"roles": [{"bullets": ["Did X"]}]}) == "• Did X"


@pytest.mark.unit
def test_preview_top_level_bullets():
    """Test the fallback to a top-level bullets list."""
    content = {"sections": {"experience": []}, "bullets": ["A", "B", "C", "D"]}
    assert make_preview(content) == "• A\n• B\n• C"


@pytest.mark.unit
def test_preview_cover_letter_opening():
    """Test that cover letters preview their opening paragraph."""
    content = {"sections": {"opening": "Dear team,", "body": [], "closing": ""}}
    assert make_preview(content) == "Dear team,"


@pytest.mark.unit
def test_preview_json_truncated():
    """Test that other content previews as truncated JSON."""
    preview = make_preview({"range": {"low": 1, "high": 2}, "trend": "x" * 500}, max_chars=50)
    assert preview.startswith('{"range"')
    assert len(preview) == 51
    assert preview.endswith("…")
