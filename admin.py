from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from quest_penalty.admin_app import run_admin


if __name__ == "__main__":
    run_admin()
