#!/usr/bin/env python3
"""
PlayMix HTTP Server Runner
"""

from playmix.crosscutting.config import get_settings_manager
from playmix.crosscutting.logging import setup_logging
from playmix.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    settings = get_settings_manager().get_mix_settings()
    setup_logging(settings.log_level, structured=settings.structured_logs)
    server = HTTPServer(
        host='localhost',
        port=3000,
        debug=True,
        settings=settings,
    )
    server.run()


if __name__ == '__main__':
    main()
