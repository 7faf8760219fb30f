# app/config/settings.py
# Application configuration loaded from the environment

import os
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AppConfig:
    """Application configuration"""

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./temsafy.db")
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # JWT settings
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30 * 24 * 60))  # 30 days

    CORS_ORIGINS = _split_csv(os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000"
    ))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Workload engine settings
    WORKLOAD = {
        'moderate_threshold': int(os.getenv('WORKLOAD_MODERATE_THRESHOLD', 40)),
        'rebalance_baseline_hours': float(os.getenv('REBALANCE_BASELINE_HOURS', 40)),
        'rebalance_max_tasks_per_user': int(os.getenv('REBALANCE_MAX_TASKS_PER_USER', 3)),
        'rebalance_target_ceiling': float(os.getenv('REBALANCE_TARGET_CEILING', 80)),
        'rebalance_overloaded_above': 90,
        'rebalance_available_below': 70,
        'stats_busy_above': int(os.getenv('WORKLOAD_STATS_BUSY_ABOVE', 70)),
        'schedule_moderate_above': 50,
        'workload_percentage_cap': 200,
        'upcoming_window_days': 7,
    }

    # Client-side polling settings
    SYNC = {
        'polling_interval_ms': int(os.getenv('SYNC_POLLING_INTERVAL_MS', 5000)),
        'snapshot_endpoint': os.getenv('SYNC_SNAPSHOT_ENDPOINT', '/api/dashboard/real-time'),
    }

    # Server runner
    SERVER = {
        'host': os.getenv("HOST", "0.0.0.0"),
        'port': int(os.getenv("PORT", "8000")),
        'reload': os.getenv("RELOAD", "true").lower() == "true",
    }

    @classmethod
    def is_sqlite(cls) -> bool:
        """Check whether the configured database is SQLite"""
        return cls.DATABASE_URL.startswith("sqlite")
