import sys
from pathlib import Path


# Import `consumables` and `database` from the working tree, ahead of any installed copy.
BACKEND_PATH = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))
