"""Run one analysis end to end from the command line and print the response.

Usage: python scripts/run_analysis.py "leaky faucet under kitchen sink" [photo.jpg]
"""
import asyncio
import json
import mimetypes
import os
import sys

from dotenv import load_dotenv
from homefix.config import get_settings
from homefix.log import setup_logging
from homefix.pipeline.run import AnalysisPipeline, StoredUpload
from homefix.store.db import init_db

def run():
    print("Loading environment...")
    load_dotenv()
    setup_logging()
    settings = get_settings()
    init_db()

    if len(sys.argv) < 2:
        print(__doc__)
        return
    description = sys.argv[1]
    upload = None
    if len(sys.argv) > 2:
        path = sys.argv[2]
        upload = StoredUpload(
            path=path,
            original_name=os.path.basename(path),
            mime=mimetypes.guess_type(path)[0] or "image/jpeg",
            size_bytes=os.path.getsize(path),
        )

    pipeline = AnalysisPipeline(settings)
    print(f"Analyzing: {description[:100]}")
    outcome = asyncio.run(pipeline.run(description, None, upload))
    print(json.dumps(outcome.to_response(), indent=2))

    pipeline.persist(outcome)
    print(f"Stored analysis for ticket {outcome.ticket_id}.")

if __name__ == "__main__":
    run()
