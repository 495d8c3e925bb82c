from typing import Dict, List, Optional

from pydantic import BaseModel


class AIModel(BaseModel):
    """A generative model the user can chat with."""

    id: str
    name: str
    description: str
    is_pro: bool = False

    @property
    def generates_images(self) -> bool:
        return "image" in self.id


class ModelCapabilities(BaseModel):
    """
    Static per-model toggles applied when a chat context is created.

    Attributes:
        web_search: Attach the Google Search grounding tool.
        image_output: Request image output with a fixed aspect ratio and size.
    """

    web_search: bool = True
    image_output: bool = False
    image_aspect_ratio: str = "1:1"
    image_size: str = "1K"


AVAILABLE_MODELS: List[AIModel] = [
    AIModel(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description="Best balance of speed, intelligence and cost.",
    ),
    AIModel(
        id="gemini-flash-lite-latest",
        name="Gemini Flash Lite",
        description="Ultra fast, lightweight model for simple tasks.",
    ),
    AIModel(
        id="gemini-3-pro-preview",
        name="Gemini 3.0 Pro",
        description="Strongest reasoning for complex problems, maths and code.",
        is_pro=True,
    ),
    AIModel(
        id="gemini-2.5-flash-image",
        name="Gemini 2.5 Flash Image",
        description="Fast image generation (no web search support).",
    ),
    AIModel(
        id="gemini-3-pro-image-preview",
        name="Gemini 3.0 Pro Image",
        description="High fidelity images with web search support.",
        is_pro=True,
    ),
]

DEFAULT_MODEL_ID = AVAILABLE_MODELS[0].id

# Models that deviate from the default capabilities.
MODEL_CAPABILITIES: Dict[str, ModelCapabilities] = {
    "gemini-2.5-flash-image": ModelCapabilities(web_search=False),
    "gemini-3-pro-image-preview": ModelCapabilities(image_output=True),
}


def get_model(model_id: str) -> Optional[AIModel]:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None


def is_known_model(model_id: str) -> bool:
    return get_model(model_id) is not None


def get_capabilities(model_id: str) -> ModelCapabilities:
    return MODEL_CAPABILITIES.get(model_id, ModelCapabilities())
