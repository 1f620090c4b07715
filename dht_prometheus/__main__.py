"""
Entry point for the exporter.

Usage:
    python -m dht_prometheus --config /etc/dht-prometheus-exporter.yml
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
