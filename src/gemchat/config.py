from pathlib import Path

# Project root: .../src/gemchat/config.py goes up three levels.
ROOT_DIR = Path(__file__).resolve().parent.parent.parent

LOGS_DIR = ROOT_DIR / "logs"
DATA_DIR = ROOT_DIR / "data"
SETTINGS_FILE = ROOT_DIR / "user_settings.json"
DATABASE_FILE = DATA_DIR / "gemchat.db"

# Key of the single persisted record holding every chat session.
STORAGE_KEY = "gemini-chat-history"

SYSTEM_INSTRUCTION = (
    "You are a helpful, knowledgeable AI assistant powered by Gemini. "
    "Give accurate, concise and well formatted answers. "
    "Use Markdown for code blocks, lists and emphasis. "
    "Be conversational but professional."
)

# Sampling parameters shared by every chat context.
GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_k": 40,
}
