# tests/conftest.py
import sys
from pathlib import Path

# Repo root holds cover_client.py / app.py as top-level modules
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
