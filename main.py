import os
import sys

# Make the project root importable so 'src.gemchat' resolves when run as a script.
ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, ROOT_DIR)

from src.gemchat.app.chat_app import main


if __name__ == "__main__":
    """
    Main entry point for the Gemchat application.
    """
    sys.exit(main())
