# CREATE FILE: utils/config.py

import copy
import json
import os
from typing import Dict, Any

# Built-in fallback, mirrors config/defaults.json
DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "pricing": {
        "platform_fee_rate": 0.02,
        "vat_rate": 0.12,
        "currency": "PHP",
        "vat_includes_shipping": False,
    },
    "delivery": {
        "vehicles": {
            "motorcycle": {"base_fee": 20, "per_km_fee": 5},
            "tricycle": {"base_fee": 30, "per_km_fee": 7},
            "van": {"base_fee": 50, "per_km_fee": 10},
        },
        "smart": {
            "base_fee": 40,
            "per_km_fee": 5,
            "base_minutes": 15,
            "per_km_minutes": 3,
        },
        "options": [
            {"id": "smart", "name": "Smart Delivery", "type": "smart", "base_price": 0,
             "duration_label": "Varies by distance", "requires_cold_chain": False},
            {"id": "cold-chain", "name": "Cold Chain", "type": "cold-chain", "base_price": 75,
             "duration_label": "30-45 min", "requires_cold_chain": True},
            {"id": "priority", "name": "Priority", "type": "priority", "base_price": 80,
             "duration_label": "15-25 min", "requires_cold_chain": False},
            {"id": "standard", "name": "Standard", "type": "standard", "base_price": 50,
             "duration_label": "30-45 min", "requires_cold_chain": False},
            {"id": "saver", "name": "Economy", "type": "saver", "base_price": 35,
             "duration_label": "45-60 min", "requires_cold_chain": False},
        ],
    },
    "market": {
        "default_category": "vegetables",
        "benchmarks": {
            "vegetables": {"standard": 60, "min": 40, "max": 120},
            "fruits": {"standard": 80, "min": 50, "max": 150},
            "rice": {"standard": 45, "min": 35, "max": 80},
            "grains": {"standard": 50, "min": 30, "max": 90},
            "poultry": {"standard": 160, "min": 120, "max": 220},
            "livestock": {"standard": 200, "min": 150, "max": 300},
            "seafood": {"standard": 180, "min": 120, "max": 250},
            "herbs": {"standard": 100, "min": 70, "max": 180},
        },
        "quality_multipliers": {"premium": 1.3, "standard": 1.0, "economy": 0.8},
        "validation_band": [0.6, 1.4],
        "average_cache_ttl_seconds": 300,
    },
    "matching": {
        "weights": {"proximity": 0.4, "price": 0.3, "demand": 0.2, "rating": 0.1},
        "max_distance_km": 50.0,
        "smart_match_threshold": 0.6,
        "neutral_proximity": 0.5,
    },
    "orders": {
        "prefix": "F2T",
        "max_allocation_attempts": 5,
    },
}


def default_config_path() -> str:
    return os.getenv(
        "F2T_CONFIG_PATH",
        os.path.join(os.path.dirname(__file__), '../config/defaults.json')
    )


def load_config(section: str, config_path: str = None) -> Dict[str, Any]:
    """Load one section of the JSON configuration, layered over built-in defaults"""
    if section not in DEFAULT_CONFIG:
        raise ValueError(f"Unknown config section: {section}")

    config = copy.deepcopy(DEFAULT_CONFIG[section])
    config_path = config_path or default_config_path()

    try:
        with open(config_path, 'r') as f:
            file_config = json.load(f)
    except FileNotFoundError:
        # Fallback defaults if config file not found
        return config

    config.update(file_config.get(section, {}))
    return config
