from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.gemchat.models.ai_model import (
    AVAILABLE_MODELS,
    DEFAULT_MODEL_ID,
    get_capabilities,
    get_model,
    is_known_model,
)
from src.gemchat.models.fragment import Fragment, InlineImage
from src.gemchat.models.message import GroundingMetadata, Message, Role
from src.gemchat.models.session import NEW_SESSION_TITLE, ChatSession, derive_title


def test_derive_title_truncates_long_first_message() -> None:
    assert derive_title("Explain recursion in simple terms") == "Explain recursion in simple te..."


def test_derive_title_keeps_short_message() -> None:
    assert derive_title("Hi") == "Hi"


def test_derive_title_keeps_exactly_thirty_characters() -> None:
    content = "x" * 30
    assert derive_title(content) == content


def test_new_session_has_sentinel_title_and_millisecond_creation_time() -> None:
    session = ChatSession()

    assert session.title == NEW_SESSION_TITLE
    assert session.has_sentinel_title
    assert session.messages == []
    assert session.created_at > 10**12


def test_message_defaults() -> None:
    message = Message(role=Role.USER, content="hello")

    assert message.is_streaming is False
    assert message.is_error is False
    assert message.image is None
    assert message.attachments is None
    assert message.timestamp.tzinfo is not None
    assert message.is_finalized


def test_message_ids_are_unique() -> None:
    assert Message(role=Role.USER).id != Message(role=Role.USER).id


def test_message_accepts_epoch_millisecond_timestamp() -> None:
    message = Message(role=Role.MODEL, timestamp=1_700_000_000_000)

    assert message.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_message_treats_naive_timestamp_as_utc() -> None:
    message = Message(role=Role.MODEL, timestamp="2024-05-01T12:00:00")

    assert message.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_message_rejects_unknown_role() -> None:
    with pytest.raises(ValidationError):
        Message(role="assistant")  # type: ignore[arg-type]


def test_message_accepts_camel_case_aliases() -> None:
    message = Message.model_validate(
        {
            "id": "m1",
            "role": "model",
            "content": "answer",
            "timestamp": "2024-05-01T12:00:00Z",
            "isStreaming": True,
            "groundingMetadata": {"groundingChunks": [{"web": {"uri": "https://a.example", "title": "A"}}]},
        }
    )

    assert message.is_streaming is True
    assert message.grounding_metadata.web_sources[0].uri == "https://a.example"


def test_grounding_metadata_skips_chunks_without_web_source() -> None:
    metadata = GroundingMetadata.model_validate({"groundingChunks": [{}, {"web": {"uri": "https://b.example"}}]})

    assert [source.uri for source in metadata.web_sources] == ["https://b.example"]


def test_inline_image_renders_data_uri() -> None:
    image = InlineImage(mime_type="image/jpeg", data="AAAA")

    assert image.to_data_uri() == "data:image/jpeg;base64,AAAA"


def test_fragment_is_empty_only_without_parts() -> None:
    assert Fragment().is_empty
    assert not Fragment(text="").is_empty


def test_model_catalog_default_is_first_entry() -> None:
    assert DEFAULT_MODEL_ID == AVAILABLE_MODELS[0].id == "gemini-2.5-flash"
    assert is_known_model("gemini-3-pro-preview")
    assert not is_known_model("gpt-5")
    assert get_model("gemini-2.5-flash-image").generates_images


def test_capabilities_disable_search_only_for_flash_image() -> None:
    for model in AVAILABLE_MODELS:
        expected = model.id != "gemini-2.5-flash-image"
        assert get_capabilities(model.id).web_search is expected


def test_capabilities_enable_image_output_only_for_pro_image() -> None:
    enabled = [model.id for model in AVAILABLE_MODELS if get_capabilities(model.id).image_output]

    assert enabled == ["gemini-3-pro-image-preview"]
    assert get_capabilities("gemini-3-pro-image-preview").image_aspect_ratio == "1:1"
    assert get_capabilities("gemini-3-pro-image-preview").image_size == "1K"
