from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.4.0"

# Load environment variables early so settings resolve consistently for local runs
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
