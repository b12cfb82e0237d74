"""Spirit Herb Chronicle dev launcher. Starts the API server."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def main():
    parser = argparse.ArgumentParser(description="Spirit Herb Chronicle dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--reset", action="store_true",
                        help="Delete the saved game before starting")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server when source files change")
    args = parser.parse_args()

    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app module reads DATA_DIR at import time, including in reload workers.
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    if args.reset:
        from lingcao import storage
        storage.init_storage(Path(os.getenv("DATA_DIR", str(ROOT / "data"))))
        storage.clear_save()
        print("Saved game deleted.")

    print(f"Starting backend on http://localhost:{PORT} ...")
    uvicorn.run("backend.app:app", host=HOST, port=int(PORT), reload=args.reload,
                log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
