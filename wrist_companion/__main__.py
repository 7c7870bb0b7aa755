"""
Entry point for running the wrist companion as a standalone service.

Usage:
    python -m wrist_companion --device-url ws://bridge.local:8765
"""

from .main import main

if __name__ == "__main__":
    main()
