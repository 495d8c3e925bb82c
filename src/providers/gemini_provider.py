"""Google Gemini generation client for Gemchat."""
import base64
import logging
import os
from typing import Any, AsyncIterator, List, Optional, Sequence, Union

from src.gemchat.config import GENERATION_CONFIG, SYSTEM_INSTRUCTION
from src.gemchat.models.ai_model import get_capabilities
from src.gemchat.models.exceptions import ProviderConfigurationError
from src.gemchat.models.fragment import Fragment, InlineImage
from src.gemchat.models.history import HistoryTurn
from src.gemchat.models.message import GroundingChunk, GroundingMetadata, GroundingWebSource
from src.gemchat.services.attachment_service import decode_data_uri
from src.gemchat.services.user_settings_manager import get_google_api_key
from src.providers.base import ChatContext, GenerationClient


logger = logging.getLogger(__name__)


class GeminiProvider(GenerationClient):
    """
    Generation client for Google Gemini models, built on the google-genai SDK.

    Environment variables take precedence over user_settings.json:
    GEMINI_API_KEY, then GOOGLE_API_KEY, then api_keys.google.
    """

    def __init__(self, client: Optional[Any] = None, api_key: Optional[str] = None) -> None:
        """
        Args:
            client: Pre-built genai.Client; skips key lookup when given.
            api_key: Explicit API key; overrides every other source.
        """
        if client is not None:
            self.client = client
            self.api_key = api_key
            return

        self.api_key = api_key or self._load_api_key()
        if not self.api_key:
            raise ProviderConfigurationError(
                "No Gemini API key configured. Set GEMINI_API_KEY or GOOGLE_API_KEY, "
                "or configure api_keys.google in user_settings.json"
            )
        self.client = self._init_client()
        logger.info("GeminiProvider initialized")

    @property
    def provider_name(self) -> str:
        return "Google"

    def _load_api_key(self) -> Optional[str]:
        for variable in ("GEMINI_API_KEY", "GOOGLE_API_KEY"):
            api_key = os.getenv(variable)
            if api_key and api_key.strip():
                logger.info("Found API key in %s environment variable", variable)
                return api_key.strip()

        logger.debug("No API key in environment, checking user_settings.json...")
        return get_google_api_key()

    def _init_client(self) -> Any:
        try:
            from google import genai
        except ImportError as exc:
            logger.error("Failed to import google.genai. Install with: pip install google-genai")
            raise ProviderConfigurationError(
                "google-genai package not installed. Install with: pip install google-genai"
            ) from exc
        return genai.Client(api_key=self.api_key)

    # ------------------- Context -------------------
    def create_context(self, model_id: str, history: Sequence[HistoryTurn]) -> ChatContext:
        from google.genai import types

        turns = list(history)
        contents = [types.Content.model_validate(turn.to_content()) for turn in turns]
        chat = self.client.aio.chats.create(
            model=model_id,
            history=contents,
            config=self._build_config(model_id),
        )
        logger.debug("Created Gemini chat for '%s' with %d history turns", model_id, len(turns))
        return ChatContext(model_id=model_id, history=turns, handle=chat)

    @staticmethod
    def _build_config(model_id: str) -> Any:
        from google.genai import types

        capabilities = get_capabilities(model_id)
        config_kwargs = {
            "system_instruction": SYSTEM_INSTRUCTION,
            "temperature": GENERATION_CONFIG["temperature"],
            "top_k": GENERATION_CONFIG["top_k"],
        }
        if capabilities.web_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        if capabilities.image_output:
            config_kwargs["image_config"] = types.ImageConfig(
                aspect_ratio=capabilities.image_aspect_ratio,
                image_size=capabilities.image_size,
            )
        return types.GenerateContentConfig(**config_kwargs)

    # ------------------- Streaming -------------------
    async def send(
        self,
        context: ChatContext,
        text: str,
        attachments: Sequence[str],
    ) -> AsyncIterator[Fragment]:
        message = self._build_message(text, attachments)
        try:
            stream = await context.handle.send_message_stream(message)
        except Exception as exc:
            logger.error("Gemini streaming failed for model '%s': %s", context.model_id, exc)
            raise
        return self._iter_fragments(stream, context.model_id)

    async def _iter_fragments(self, stream: Any, model_id: str) -> AsyncIterator[Fragment]:
        try:
            async for chunk in stream:
                yield chunk_to_fragment(chunk)
        except Exception as exc:
            logger.error("Gemini stream for model '%s' broke off: %s", model_id, exc)
            raise

    @staticmethod
    def _build_message(text: str, attachments: Sequence[str]) -> Union[str, List[Any]]:
        if not attachments:
            return text

        from google.genai import types

        parts: List[Any] = []
        if text.strip():
            parts.append(types.Part(text=text))
        for data_uri in attachments:
            decoded = decode_data_uri(data_uri)
            if decoded is None:
                logger.warning("Dropping malformed attachment from outgoing message.")
                continue
            mime_type, data = decoded
            parts.append(types.Part.from_bytes(data=data, mime_type=mime_type))
        return parts


def chunk_to_fragment(chunk: Any) -> Fragment:
    """Translate one streamed GenerateContentResponse chunk into a Fragment."""
    candidates = getattr(chunk, "candidates", None) or []
    candidate = candidates[0] if candidates else None

    sources = None
    raw_metadata = getattr(candidate, "grounding_metadata", None) if candidate else None
    if raw_metadata is not None:
        sources = _convert_grounding_metadata(raw_metadata)

    inline_image = None
    content = getattr(candidate, "content", None) if candidate else None
    for part in getattr(content, "parts", None) or []:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is None or not getattr(inline_data, "data", None):
            continue
        data = inline_data.data
        if isinstance(data, (bytes, bytearray)):
            data = base64.b64encode(bytes(data)).decode("ascii")
        # Last image of the chunk wins.
        inline_image = InlineImage(mime_type=inline_data.mime_type or "image/png", data=data)

    return Fragment(text=_chunk_text(chunk, content), sources=sources, inline_image=inline_image)


def _chunk_text(chunk: Any, content: Any) -> Optional[str]:
    parts = getattr(content, "parts", None)
    if parts is None:
        return getattr(chunk, "text", None)
    texts = [
        part.text
        for part in parts
        if isinstance(getattr(part, "text", None), str) and not getattr(part, "thought", False)
    ]
    return "".join(texts) if texts else None


def _convert_grounding_metadata(raw_metadata: Any) -> GroundingMetadata:
    chunks: List[GroundingChunk] = []
    for raw_chunk in getattr(raw_metadata, "grounding_chunks", None) or []:
        web = getattr(raw_chunk, "web", None)
        if web is None or not getattr(web, "uri", None):
            chunks.append(GroundingChunk())
            continue
        chunks.append(GroundingChunk(web=GroundingWebSource(uri=web.uri, title=getattr(web, "title", None) or "")))
    return GroundingMetadata(grounding_chunks=chunks)
