import json
import logging
from typing import Any, Dict, Optional

from src.gemchat.config import SETTINGS_FILE
from src.gemchat.models.ai_model import DEFAULT_MODEL_ID, is_known_model

logger = logging.getLogger(__name__)

# Baseline API key structure for the settings payload.
DEFAULT_API_KEYS = {
    "google": "",
}


def _default_settings() -> Dict[str, Any]:
    return {
        "selected_model": DEFAULT_MODEL_ID,
        "api_keys": DEFAULT_API_KEYS.copy(),
        "database_path": "",
    }


def _normalize_model(value: Optional[str], fallback: str) -> str:
    if not isinstance(value, str):
        return fallback
    value = value.strip()
    return value if is_known_model(value) else fallback


def _sanitize_api_keys(api_keys: Any) -> Dict[str, str]:
    sanitized = DEFAULT_API_KEYS.copy()
    if isinstance(api_keys, dict):
        for key in sanitized.keys():
            value = api_keys.get(key)
            if isinstance(value, str):
                sanitized[key] = value.strip()
        # "gemini" is accepted as an alias of "google".
        alias = api_keys.get("gemini")
        if not sanitized["google"] and isinstance(alias, str):
            sanitized["google"] = alias.strip()
    return sanitized


def load_user_settings() -> Dict[str, Any]:
    """
    Load user settings from disk, falling back to defaults for anything missing or invalid.
    """
    settings = _default_settings()

    if not SETTINGS_FILE.exists():
        return settings

    try:
        with open(SETTINGS_FILE, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (IOError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read user settings from %s: %s", SETTINGS_FILE, exc)
        return settings

    if not isinstance(data, dict):
        logger.warning("User settings file %s does not contain a JSON object.", SETTINGS_FILE)
        return settings

    settings["selected_model"] = _normalize_model(data.get("selected_model"), settings["selected_model"])
    settings["api_keys"] = _sanitize_api_keys(data.get("api_keys"))

    database_path = data.get("database_path")
    if isinstance(database_path, str):
        settings["database_path"] = database_path.strip()

    return settings


def save_user_settings(settings: Dict[str, Any]) -> None:
    """
    Persist the user settings payload to disk.
    """
    normalized = _default_settings()
    normalized.update({k: v for k, v in settings.items() if k in normalized})

    payload: Dict[str, Any] = {
        "selected_model": _normalize_model(normalized.get("selected_model"), DEFAULT_MODEL_ID),
        "api_keys": _sanitize_api_keys(normalized.get("api_keys")),
        "database_path": str(normalized.get("database_path") or "").strip(),
    }

    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(SETTINGS_FILE, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=4)

    logger.info("User settings saved to %s", SETTINGS_FILE)


def update_selected_model(model_id: str) -> Dict[str, Any]:
    """
    Remember the model the user last chatted with. Unknown ids are ignored.
    """
    settings = load_user_settings()
    settings["selected_model"] = _normalize_model(model_id, settings["selected_model"])
    save_user_settings(settings)
    return settings


def get_google_api_key(settings: Optional[Dict[str, Any]] = None) -> Optional[str]:
    if settings is None:
        settings = load_user_settings()
    api_key = (settings.get("api_keys") or {}).get("google")
    if isinstance(api_key, str) and api_key.strip():
        return api_key.strip()
    return None
