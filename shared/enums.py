from __future__ import annotations

from enum import Enum


class LogType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    AUDIT = "audit"
    METRIC = "metric"
    DEBUG = "debug"
    SUCCESS = "success"


class Importance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Subsystem(str, Enum):
    DB = "db"
    CACHE = "cache"
    QUEUE = "queue"
    NETWORK = "network"


class UserRole(str, Enum):
    SUPER_ADMIN = "super-admin"
    ADMIN = "admin"
    USER = "user"


class AuthStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"
