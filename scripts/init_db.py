import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from insiderscope.config import load_config
from insiderscope.db import init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    print(f"DB initialized: {cfg.DB_DSN}")


if __name__ == "__main__":
    main()
