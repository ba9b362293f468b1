"""Configuration loader for Fieldnet Sentinel."""

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


Operator = Literal[">", "<", ">=", "<="]


class InfectionConfig(BaseModel):
    # Entry thresholds
    tvoc_threshold: float = 90.0
    low_humidity_threshold: float = 20.0
    low_soil_moisture_threshold: float = 0.10
    # Recovery thresholds (looser, hysteresis band)
    tvoc_recovery_threshold: float = 80.0
    humidity_recovery_threshold: float = 25.0
    soil_moisture_recovery_threshold: float = 0.15
    # 0 disables the minimum infected duration
    quarantine_minutes: int = 0


class AnomalyConfig(BaseModel):
    threshold: float = 2.5
    window_size: int = Field(default=60, ge=1)
    correlation_window_minutes: int = 30
    correlation_threshold: float = 0.7
    top_n: int = 5


class RadiusConfig(BaseModel):
    primary_radius_meters: float = 100.0
    fallback_radius_meters: float = 300.0


class RuleCondition(BaseModel):
    sensor: str
    operator: Operator
    value: float


class HazardRule(BaseModel):
    rule_id: str
    label: str = ""
    conditions: list[RuleCondition] = Field(min_length=1, max_length=2)
    message_template: str = ""


def default_hazard_rules() -> list[HazardRule]:
    """Rules in evaluation priority order."""
    return [
        HazardRule(
            rule_id="pest_outbreak",
            label="Pest Outbreak",
            conditions=[
                RuleCondition(sensor="air_temperature_c", operator=">", value=40),
                RuleCondition(sensor="relative_humidity_pct", operator=">", value=85),
            ],
            message_template=(
                "PEST OUTBREAK - Extreme heat ({air_temperature_c}°C) + humidity "
                "({relative_humidity_pct}%) creating ideal pest breeding conditions"
            ),
        ),
        HazardRule(
            rule_id="severe_drought",
            label="Severe Drought",
            conditions=[
                RuleCondition(sensor="soil_moisture_m3m3", operator="<", value=0.08),
                RuleCondition(sensor="soil_water_tension_kpa", operator=">", value=60),
            ],
            message_template=(
                "SEVERE DROUGHT - Soil moisture critically low ({soil_moisture_m3m3} m³/m³) "
                "with tension at {soil_water_tension_kpa} kPa"
            ),
        ),
        HazardRule(
            rule_id="frost_emergency",
            label="Frost Emergency",
            conditions=[
                RuleCondition(sensor="air_temperature_c", operator="<", value=1),
            ],
            message_template=(
                "FROST EMERGENCY - Temperature dropped to {air_temperature_c}°C, "
                "severe frost damage imminent"
            ),
        ),
        HazardRule(
            rule_id="chemical_hazard",
            label="Chemical Hazard",
            conditions=[
                RuleCondition(sensor="tvoc_ugm3", operator=">", value=450),
                RuleCondition(sensor="soil_ph", operator="<", value=4.8),
            ],
            message_template=(
                "CHEMICAL HAZARD - TVOC at {tvoc_ugm3} µg/m³ with acidic soil pH {soil_ph}"
            ),
        ),
    ]


class PublisherConfig(BaseModel):
    enabled: bool = False
    backend: Literal["jsonl", "http", "none"] = "jsonl"
    path: str = "data/alerts.jsonl"
    url: Optional[str] = None
    timeout_seconds: float = 10.0


class MonitorConfig(BaseModel):
    feed_size: int = 50
    critical_alerts_enabled: bool = True


class APIConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    workers: int = 1
    cors_origins: list[str] = ["http://localhost:3000"]


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
    rotation: str = "10 MB"
    retention: str = "7 days"
    file_enabled: bool = False


class AppConfig(BaseModel):
    name: str = "fieldnet_sentinel"
    version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True


class Settings(BaseModel):
    app: AppConfig = AppConfig()
    logging: LoggingConfig = LoggingConfig()
    infection: InfectionConfig = InfectionConfig()
    anomaly: AnomalyConfig = AnomalyConfig()
    radius: RadiusConfig = RadiusConfig()
    hazard_rules: list[HazardRule] = Field(default_factory=default_hazard_rules)
    publisher: PublisherConfig = PublisherConfig()
    monitor: MonitorConfig = MonitorConfig()
    api: APIConfig = APIConfig()


def get_project_root() -> Path:
    return Path(__file__).parent.parent.parent


def load_yaml_config(env: str = "development") -> dict[str, Any]:
    config_path = get_project_root() / "config" / "environments" / f"{env}.yaml"
    if not config_path.exists():
        return {}
    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


def get_settings(env: Optional[str] = None) -> Settings:
    env = env or os.getenv("APP_ENV", "development")
    yaml_config = load_yaml_config(env)

    # Override with env vars
    if os.getenv("LOG_LEVEL"):
        yaml_config.setdefault("logging", {})["level"] = os.getenv("LOG_LEVEL")
    if os.getenv("ALERT_PRIMARY_RADIUS_M"):
        yaml_config.setdefault("radius", {})["primary_radius_meters"] = float(os.getenv("ALERT_PRIMARY_RADIUS_M"))
    if os.getenv("ALERT_FALLBACK_RADIUS_M"):
        yaml_config.setdefault("radius", {})["fallback_radius_meters"] = float(os.getenv("ALERT_FALLBACK_RADIUS_M"))
    if os.getenv("ALERT_PUBLISH_URL"):
        publisher = yaml_config.setdefault("publisher", {})
        publisher["url"] = os.getenv("ALERT_PUBLISH_URL")
        publisher["backend"] = "http"

    return Settings(**yaml_config) if yaml_config else Settings()


def reload_settings(env: Optional[str] = None) -> Settings:
    """Re-read YAML and environment and replace the module-level settings."""
    global settings
    settings = get_settings(env)
    return settings


settings = get_settings()
