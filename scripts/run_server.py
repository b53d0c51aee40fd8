#!/usr/bin/env python3
"""
Start the memory embeddings API under uvicorn.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from memory_embeddings.core.config import DEBUG, HOST, LOG_LEVEL, PORT, validate_store_config


def main():
    issues = validate_store_config()
    for issue in issues:
        print(f"WARNING: {issue}")

    print(f"Starting memory embeddings service on {HOST}:{PORT}")
    uvicorn.run(
        "memory_embeddings.api.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
