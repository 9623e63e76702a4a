"""Tests for prompt templates."""

import pytest

from pilot_llm import prompts
from pilot_llm.types import GenerationParams


class TestTemplates:
    def test_summarize(self):
        text = prompts.summarize("Release notes", "https://example.com/r", word_limit=50, tone="formal")
        assert '"Release notes" (https://example.com/r)' in text
        assert "<= 50 words" in text
        assert "formal tone" in text
        assert "reply in English" in text

    def test_qa(self):
        text = prompts.qa("Who wrote it?", language="French")
        assert "Question: Who wrote it?" in text
        assert text.endswith("Reply in French.")

    def test_rewrite_defaults(self):
        assert "for general" in prompts.rewrite("shorten")

    def test_email_draft(self):
        assert "email to Dana" in prompts.email_draft("Dana")

    def test_meeting_minutes(self):
        assert "action items" in prompts.meeting_minutes()


class TestBuildParams:
    def test_defaults_stream(self):
        params = prompts.build_params("hi", "ctx")
        assert params == GenerationParams(prompt="hi", context="ctx", stream=True)

    def test_overrides(self):
        params = prompts.build_params("hi", stream=False, temperature=0.1, system="s")
        assert params.stream is False
        assert params.temperature == 0.1
        assert params.system == "s"

    def test_unknown_override(self):
        with pytest.raises(TypeError):
            prompts.build_params("hi", colour="red")
