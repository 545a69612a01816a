"""
Proxy Server
============
Flask app exposing the upstream quote APIs with server-held credentials,
plus engine-backed quote and recommendation endpoints.

Endpoints:
    GET /api/test
    GET /api/<provider>/<symbol>      provider in polygon, twelve, alpha
    GET /api/quote/<symbol>
    GET /api/recommendations?symbols=AAPL,TSLA
    GET /api/status
"""

from datetime import datetime
from typing import Optional
import logging
import threading

import requests
from flask import Flask, jsonify, request

from .config import SystemConfig
from .data.providers import PROVIDER_CLASSES
from .orchestrator import SignalEngine, normalize_symbols

logger = logging.getLogger(__name__)


def _passthrough_key(config: SystemConfig, provider: str) -> Optional[str]:
    keys = {
        'polygon': config.data.polygon_api_key,
        'twelve': config.data.twelve_data_api_key,
        # Alpha Vantage serves a limited demo key
        'alpha': config.data.alpha_vantage_api_key or 'demo',
    }
    return keys.get(provider)


def create_app(engine: Optional[SignalEngine] = None,
               config: Optional[SystemConfig] = None,
               session: Optional[requests.Session] = None) -> Flask:
    """Build the Flask app; the engine is created on first use when not given."""
    config = config or (engine.config if engine is not None else SystemConfig())
    session = session or requests.Session()

    app = Flask(__name__)
    state = {'engine': engine}
    engine_lock = threading.Lock()

    def get_engine() -> SignalEngine:
        with engine_lock:
            if state['engine'] is None:
                created = SignalEngine(config)
                created.initialize()
                state['engine'] = created
        return state['engine']

    @app.route('/api/test')
    def test():
        return jsonify({
            'message': 'API server is working!',
            'timestamp': datetime.now().isoformat()
        })

    @app.route('/api/quote/<symbol>')
    def get_quote(symbol):
        quote = get_engine().chain.get_quote(symbol.strip().upper())
        return jsonify(quote.to_dict())

    @app.route('/api/recommendations')
    def get_recommendations():
        raw = request.args.get('symbols', '')
        symbols = normalize_symbols(raw.split(',')) if raw else None
        result = get_engine().run_cycle(symbols)
        return jsonify({
            'cycle': result.cycle,
            'timestamp': result.timestamp.isoformat(),
            'recommendations': [r.to_dict() for r in result.recommendations],
            'skipped': result.skipped
        })

    @app.route('/api/status')
    def get_status():
        return jsonify(get_engine().get_status())

    @app.route('/api/<provider>/<symbol>')
    def passthrough(provider, symbol):
        if provider not in PROVIDER_CLASSES:
            return jsonify({'error': f'Unknown provider: {provider}'}), 404

        upstream = PROVIDER_CLASSES[provider](
            api_key=_passthrough_key(config, provider),
            timeout=config.data.request_timeout_seconds,
            session=session
        )
        logger.info(f"Fetching {symbol} from {provider}...")

        try:
            url, params = upstream.build_request(symbol)
            resp = session.get(url, params=params, timeout=upstream.timeout)
            return jsonify(resp.json())
        except Exception as e:
            logger.error(f"{provider} API error: {e}")
            return jsonify({'error': str(e)}), 500

    return app


def main():
    """Run the proxy server."""
    import argparse

    parser = argparse.ArgumentParser(description='QuantumTrade Proxy Server')
    parser.add_argument('--host', type=str, default='0.0.0.0')
    parser.add_argument('--port', type=int, default=3001)
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--offline', action='store_true',
                        help='Serve synthetic quotes and mock options flow')

    args = parser.parse_args()

    config = SystemConfig.load(args.config) if args.config else SystemConfig()

    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level.upper(), logging.INFO),
        format=config.monitoring.log_format
    )

    engine = SignalEngine(config, offline=args.offline)
    engine.initialize()

    app = create_app(engine=engine)
    logger.info(f"Proxy server running on port {args.port}")
    try:
        app.run(host=args.host, port=args.port, debug=False)
    finally:
        engine.shutdown()


if __name__ == "__main__":
    main()
