"""
Tests for the content pipeline.
"""

import pytest

from book_lab.core.exceptions import (
    ChapterGenerationError,
    NoteProcessingError,
    NotConfiguredError,
    OutlineGenerationError,
    ProviderUnavailableError,
    RefinementError,
    TopicExtractionError,
)
from book_lab.services.gateway import UnconfiguredGateway
from book_lab.services.pipeline import ContentPipeline, format_notes, split_paragraphs
from tests.conftest import FakeGateway


def user_prompt(call):
    return call["messages"][-1]["content"]


class TestExtractTopics:
    def test_splits_and_trims(self, pipeline, gateway):
        gateway.responses = [" History ,Politics,  , Revolution "]
        assert pipeline.extract_topics("Some text") == ["History", "Politics", "Revolution"]

        call = gateway.calls[0]
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 100
        assert call["messages"][0]["role"] == "system"
        assert user_prompt(call).endswith("Paragraph: Some text")

    def test_duplicates_kept(self, pipeline, gateway):
        gateway.responses = ["Art, Art"]
        assert pipeline.extract_topics("text") == ["Art", "Art"]

    def test_empty_response(self, pipeline, gateway):
        gateway.responses = [""]
        assert pipeline.extract_topics("text") == []

    def test_failure_is_chained(self, pipeline, gateway):
        cause = ProviderUnavailableError("down", status_code=503)
        gateway.responses = [cause]

        with pytest.raises(TopicExtractionError) as exc_info:
            pipeline.extract_topics("text")
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause


class TestProcessNotes:
    def test_sample_paragraph_filter(self, pipeline, gateway, store):
        gateway.default = "Dogs"
        raw = "Short.\n\nThis paragraph is definitely long enough.\n\n   "

        result = pipeline.process_notes(raw)

        assert result.success is True
        assert result.processed_count == 1
        assert len(gateway.calls) == 1
        assert len(store.list_notes()) == 1

    def test_length_boundary(self):
        assert split_paragraphs("x" * 20) == []
        assert split_paragraphs("x" * 21) == ["x" * 21]
        assert split_paragraphs("  " + "y" * 21 + "  \n\n" + "z" * 5) == ["y" * 21]

    def test_stores_notes_topics_and_links(self, pipeline, gateway, store):
        gateway.responses = ["History, Politics", "History"]
        raw = "The storming of the Bastille happened in 1789.\n\nNapoleon rose to power after the revolution."

        result = pipeline.process_notes(raw)

        assert result.processed_count == 2
        assert [r.topics for r in result.results] == [["History", "Politics"], ["History"]]
        assert result.results[0].content == "The storming of the Bastille happened in 1789...."

        topics = {t.name: t for t in store.list_topics()}
        assert set(topics) == {"History", "Politics"}
        assert topics["History"].note_count == 2
        assert topics["Politics"].note_count == 1

        first_note = store.get_note(result.results[0].note_id)
        assert first_note.topics == ["History", "Politics"]

    def test_preview_is_truncated(self, pipeline, gateway):
        gateway.default = "Long"
        paragraph = "word " * 60

        result = pipeline.process_notes(paragraph)
        assert result.results[0].content == paragraph.strip()[:100] + "..."

    def test_existing_topic_reused(self, pipeline, gateway, store):
        existing = store.create_topic("Science")
        gateway.default = "Science"

        pipeline.process_notes("Photosynthesis converts light into chemical energy.")
        assert [t.id for t in store.list_topics()] == [existing.id]

    def test_partial_failure_keeps_earlier_notes(self, pipeline, gateway, store):
        cause = ProviderUnavailableError("timeout")
        gateway.responses = ["First", cause]
        raw = "The first paragraph is long enough.\n\nThe second paragraph is long enough too."

        with pytest.raises(NoteProcessingError) as exc_info:
            pipeline.process_notes(raw)

        error = exc_info.value
        assert isinstance(error.__cause__, TopicExtractionError)
        assert error.__cause__.cause is cause
        assert len(error.results) == 1
        assert error.results[0].topics == ["First"]
        assert [n.content for n in store.list_notes()] == ["The first paragraph is long enough."]

    def test_nothing_to_process(self, pipeline, gateway):
        result = pipeline.process_notes("too short\n\nalso short")
        assert result.processed_count == 0
        assert result.results == []
        assert gateway.calls == []


class TestGeneration:
    def test_generate_outline_prompt(self, pipeline, gateway, store):
        gateway.responses = ["# Outline"]
        notes = [store.create_note("First idea"), {"content": "Second idea"}, "Third idea"]

        assert pipeline.generate_outline("Revolutions", notes) == "# Outline"

        call = gateway.calls[0]
        assert (call["temperature"], call["max_tokens"]) == (0.7, 1000)
        prompt = user_prompt(call)
        assert 'chapter about "Revolutions"' in prompt
        assert "1. First idea\n\n2. Second idea\n\n3. Third idea" in prompt
        assert "Main sections (3-5)" in prompt

    def test_generate_outline_does_not_persist(self, pipeline, store, book):
        pipeline.generate_outline("Topic", ["note"])
        assert store.list_chapters(book.id) == []

    def test_refine_outline(self, pipeline, gateway):
        gateway.responses = ["better outline"]
        assert pipeline.refine_outline("old outline", "add an example") == "better outline"

        prompt = user_prompt(gateway.calls[0])
        assert "old outline" in prompt
        assert "instructions: add an example" in prompt

    def test_generate_chapter(self, pipeline, gateway):
        gateway.responses = ["<h2>Intro</h2><p>Text</p>"]
        html = pipeline.generate_chapter("- Intro", ["a note"])

        assert html == "<h2>Intro</h2><p>Text</p>"
        call = gateway.calls[0]
        assert (call["temperature"], call["max_tokens"]) == (0.8, 4000)
        assert "Outline:\n- Intro" in user_prompt(call)
        assert "Source Notes:\n1. a note" in user_prompt(call)

    def test_refine_content(self, pipeline, gateway):
        pipeline.refine_content("<p>draft</p>", "make it shorter")
        call = gateway.calls[0]
        assert (call["temperature"], call["max_tokens"]) == (0.7, 2000)
        assert "HTML format" in user_prompt(call)

    @pytest.mark.parametrize("operation, error", [
        (lambda p: p.generate_outline("t", []), OutlineGenerationError),
        (lambda p: p.refine_outline("o", "i"), RefinementError),
        (lambda p: p.generate_chapter("o", []), ChapterGenerationError),
        (lambda p: p.refine_content("c", "i"), RefinementError),
    ])
    def test_errors_wrap_gateway_failure(self, store, operation, error):
        cause = ProviderUnavailableError("boom")
        pipeline = ContentPipeline(FakeGateway([cause]), store)

        with pytest.raises(error) as exc_info:
            operation(pipeline)
        assert exc_info.value.cause is cause


class TestUnconfigured:
    @pytest.mark.parametrize("operation", [
        lambda p: p.extract_topics("Paragraph text"),
        lambda p: p.generate_outline("Topic", ["note"]),
        lambda p: p.refine_outline("outline", "instructions"),
        lambda p: p.generate_chapter("outline", ["note"]),
        lambda p: p.refine_content("content", "instructions"),
        lambda p: p.process_notes("A paragraph that is long enough to process."),
    ])
    def test_no_provider_fails_with_not_configured(self, store, operation):
        pipeline = ContentPipeline(UnconfiguredGateway(), store)

        with pytest.raises(Exception) as exc_info:
            operation(pipeline)

        cause = exc_info.value.__cause__
        while cause is not None and not isinstance(cause, NotConfiguredError):
            cause = cause.__cause__
        assert isinstance(cause, NotConfiguredError)

    def test_no_notes_stored_without_provider(self, store):
        pipeline = ContentPipeline(UnconfiguredGateway(), store)
        with pytest.raises(NoteProcessingError):
            pipeline.process_notes("A paragraph that is long enough to process.")
        assert store.list_notes() == []


def test_format_notes():
    assert format_notes(["a", "b"]) == "1. a\n\n2. b"
    assert format_notes([]) == ""
