#!/usr/bin/env python3
"""Web API entry point for the expense assistant."""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from assistant.config import load_config
from web.app import create_app


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.json"
    config = load_config(config_path)

    print(f"\n  Expense Assistant - Web API")
    print(f"  Provider: {config.completion.provider}")
    print(f"  Model: {config.completion.model_name or '(not configured)'}")
    print(f"  Endpoint: {config.completion.endpoint or '(not configured)'}")
    print(f"  POST http://localhost:5000/api/chat\n")

    app = create_app(config)
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)


if __name__ == "__main__":
    main()
