"""Core module."""
from src.core.errors import FieldnetError, PublishError, RuleConfigError, UnknownNodeError
from src.core.models import (
    AlertLine,
    Anomaly,
    CriticalAlert,
    HealthState,
    InterClusterAlert,
    Node,
    SensorReading,
    TickResult,
    Trigger,
)
