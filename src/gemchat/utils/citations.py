from typing import List, Optional

from src.gemchat.models.message import GroundingMetadata, GroundingWebSource, Message


def unique_web_sources(metadata: Optional[GroundingMetadata]) -> List[GroundingWebSource]:
    """Web sources of a reply, first occurrence per URI, in citation order."""
    if metadata is None:
        return []
    seen = set()
    sources: List[GroundingWebSource] = []
    for source in metadata.web_sources:
        if source.uri in seen:
            continue
        seen.add(source.uri)
        sources.append(source)
    return sources


def format_citations(message: Message) -> str:
    """Numbered, one-per-line citation list for plain-text front ends."""
    lines = []
    for index, source in enumerate(unique_web_sources(message.grounding_metadata), start=1):
        label = source.title or source.uri
        lines.append(f"[{index}] {label} <{source.uri}>")
    return "\n".join(lines)
