"""ilansync – run one listing ingestion from the source site via Scrapfly."""

import sys
from pathlib import Path

# Run the ingestion script
sys.path.insert(0, str(Path(__file__).resolve().parent))
from scripts.run_ingestion import main

if __name__ == "__main__":
    import asyncio
    asyncio.run(main())
