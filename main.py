"""Aethelgard — dev launcher. Starts the API server with auto-reload."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13013"))


def main():
    parser = argparse.ArgumentParser(description="Aethelgard dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--seed-lore", action="store_true",
                        help="Write the bundled world lore to the store before starting")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Export before uvicorn imports aethelgard.app so the reloader sees the same dir
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    if args.seed_lore:
        from aethelgard.archives import NarrativeStore
        from aethelgard.config import load_settings
        from aethelgard.lore import WORLD_LORE
        from aethelgard.storage import Storage

        settings = load_settings()
        NarrativeStore(Storage(settings.data_dir)).save_lore(WORLD_LORE)
        print(f"Seeded world lore into {settings.data_dir}")

    print(f"Starting Aethelgard on http://localhost:{args.port} ...")
    uvicorn.run(
        "aethelgard.app:app",
        host=args.host,
        port=args.port,
        reload=True,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
