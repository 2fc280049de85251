"""Image relay package: loads .env settings before any module reads them."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


_ROOT_DIR = Path(__file__).resolve().parents[2]

# Load base env first, then allow .env.local to override for developer-specific tweaks.
load_dotenv(_ROOT_DIR / ".env")
load_dotenv(_ROOT_DIR / ".env.local", override=True)
