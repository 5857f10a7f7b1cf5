#!/usr/bin/env python3
"""Convenience runner for the location tracker.

Usage:
    python run.py [live | track | menu] [options]
"""
import logging
from location_tracker.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    raise SystemExit(main())
