from src.gemchat.models.message import GroundingChunk, GroundingMetadata, GroundingWebSource, Message, Role
from src.gemchat.utils.citations import format_citations, unique_web_sources


def _metadata(*sources):
    return GroundingMetadata(
        grounding_chunks=[GroundingChunk(web=GroundingWebSource(uri=uri, title=title)) for uri, title in sources]
        + [GroundingChunk()]
    )


def test_unique_web_sources_keeps_first_occurrence():
    metadata = _metadata(("https://a.example", "A"), ("https://b.example", "B"), ("https://a.example", "A again"))

    sources = unique_web_sources(metadata)

    assert [(source.uri, source.title) for source in sources] == [
        ("https://a.example", "A"),
        ("https://b.example", "B"),
    ]


def test_unique_web_sources_of_missing_metadata():
    assert unique_web_sources(None) == []


def test_format_citations_numbers_sources_and_falls_back_to_uri():
    message = Message(
        role=Role.MODEL,
        content="answer",
        grounding_metadata=_metadata(("https://a.example", "A"), ("https://b.example", "")),
    )

    assert format_citations(message) == "[1] A <https://a.example>\n[2] https://b.example <https://b.example>"


def test_format_citations_without_sources():
    assert format_citations(Message(role=Role.MODEL, content="plain")) == ""
