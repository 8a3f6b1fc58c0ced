# main.py
import os
import sys
import logging
import argparse
import json
import copy
from pathlib import Path

from api import ApiClient
from logger import configure_logger
from models import Cart, CashierSystem
from storage import SessionStore

logger = logging.getLogger("pos_client")

# Default configuration
DEFAULT_CONFIG = {
    "api": {
        "base_url": "http://localhost:8000/api",
        "timeout": 30,
        "per_page": 100,
        "token": None
    },
    "session": {
        "state_file": "session.json"
    },
    "receipt": {
        "receipt_dir": "receipts",
        "format": "txt"
    },
    "export": {
        "default_dir": "exports"
    },
    "logging": {
        "level": "INFO",
        "file": "logs/pos_client.log",
        "max_size": 1048576,
        "backup_count": 3
    },
    "currency": "$",
    "theme": "default",
    "low_stock_threshold": 10
}


def merge_config(defaults, overrides):
    """Overlay user settings on the defaults, section by section."""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(defaults.get(key), dict):
            merged[key] = merge_config(defaults[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = merge_config(DEFAULT_CONFIG, json.load(f))
                logger.info(f"Configuration loaded from {config_path}")
                return config
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config: {e}")
            return merge_config(DEFAULT_CONFIG, {})

    with open(config_path, 'w') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
        logger.info(f"Created default configuration at {config_path}")

    return merge_config(DEFAULT_CONFIG, {})


def setup_directories(config):
    """Create required directories if they don't exist."""
    dir_mappings = {
        'receipt_dir': config['receipt']['receipt_dir'],
        'export_dir': config['export']['default_dir'],
        'log_dir': os.path.dirname(config['logging']['file'] or ''),
    }

    for dir_key, dir_path in dir_mappings.items():
        if not dir_path:
            continue
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")
        else:
            logger.debug(f"Directory already exists: {path}")


def build_system(config, token=None):
    """Wire the API client, persisted session and cart into a CashierSystem."""
    session = SessionStore(config['session']['state_file'])
    cart_data, saved_token = session.load()

    token = token or config['api'].get('token') or saved_token
    if token and token != saved_token:
        session.save_token(token)

    api = ApiClient(
        base_url=config['api']['base_url'],
        token=token,
        timeout=config['api']['timeout'],
    )
    cart = Cart().load_dict(cart_data)
    cart.on_change = session.save_cart
    system = CashierSystem(api, cart=cart)
    cart.notify = system.notify
    if len(cart):
        logger.info(f"Restored cart with {len(cart)} lines")
    return system


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Point of sale dashboard")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    parser.add_argument("--token", help="API bearer token (stored in the session file)")
    return parser.parse_args(argv)


def main():
    try:
        args = parse_arguments()

        config = load_config(args.config)
        configure_logger(config, debug=args.debug)
        if args.debug:
            logger.debug("Debug mode enabled")

        setup_directories(config)

        system = build_system(config, token=args.token)
        logger.info(f"API endpoint: {config['api']['base_url']}")

        # imported late so the core can run without a display
        from ui import CashierUI
        app = CashierUI(system, config)
        logger.info("Starting POS application")
        app.run()

    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
