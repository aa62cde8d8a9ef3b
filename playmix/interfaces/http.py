import logging
import os
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request

from playmix.application.engine import MixEngine
from playmix.application.presets import list_presets
from playmix.crosscutting.config import MixSettings
from playmix.domain.entities import WeightMode
from playmix.domain.errors import ConfigError
from playmix.interfaces.payloads import (
    content_warning_to_json,
    imbalance_warning_to_json,
    parse_request,
    preset_to_json,
    preview_to_json,
    projection_to_json,
    result_to_json,
)


class HTTPServer:
    """HTTP server exposing mixing and advisories as JSON endpoints."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 settings: Optional[MixSettings] = None):
        """Initialize HTTP server."""
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)
        self.engine = MixEngine(settings)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _request_json(self):
        data = request.get_json(silent=True)
        if data is None:
            raise ConfigError("request body must be a JSON object")
        return data

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.errorhandler(ConfigError)
        def config_error(e: ConfigError):
            self.logger.warning(f"Rejected request: {e}")
            return jsonify({
                'error': 'Invalid mix configuration',
                'type': type(e).__name__,
                'details': str(e)
            }), 400

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/presets', methods=['GET'])
        def presets():
            return jsonify({'presets': [preset_to_json(p) for p in list_presets()]}), 200

        @self.app.route('/mix', methods=['POST'])
        def mix():
            """Generate a mix from a JSON request body."""
            pools, ratio_config, options, seed = parse_request(self._request_json())
            result = self.engine.mix(pools, ratio_config, options, seed=seed)
            return jsonify(result_to_json(result)), 200

        @self.app.route('/advisories', methods=['POST'])
        def advisories():
            """Pre-flight warnings and ratio preview for a mix request."""
            data = self._request_json()
            pools, ratio_config, options, _ = parse_request(data)
            try:
                basis = WeightMode(data.get('basis', WeightMode.COUNT.value))
            except ValueError:
                raise ConfigError(f"unknown basis {data.get('basis')!r}")
            return jsonify({
                'contentWarning': content_warning_to_json(
                    self.engine.check_sufficient_content(pools, options, ratio_config)),
                'ratioImbalance': imbalance_warning_to_json(
                    self.engine.check_ratio_imbalance(pools, ratio_config, options)),
                'exhaustion': projection_to_json(
                    self.engine.project_exhaustion(pools, ratio_config, options)),
                'ratios': [preview_to_json(p) for p in
                           self.engine.describe_ratios(pools, ratio_config, basis)],
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'PlayMix HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'presets': '/presets',
                    'mix': '/mix',
                    'advisories': '/advisories'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting PlayMix HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(settings: Optional[MixSettings] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(settings=settings)
    return server.app


if __name__ == '__main__':
    server = HTTPServer()
    server.run()
