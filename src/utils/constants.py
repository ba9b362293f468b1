"""Project-wide constants."""

NODE_STATUSES = ["online", "infected", "at_risk", "offline"]

# Numeric fields carried by every sensor reading
SENSOR_FIELDS = [
    "soil_moisture_m3m3",
    "soil_temperature_c",
    "soil_ec_msm",
    "soil_ph",
    "soil_water_tension_kpa",
    "air_temperature_c",
    "relative_humidity_pct",
    "atmospheric_pressure_hpa",
    "ambient_co2_umolmol",
    "rainfall_rate_mmh",
    "tvoc_ugm3",
    "water_table_depth_m",
    "solar_irradiance_wm2",
    "dew_point_c",
    "vpd_kpa",
]

# Fields scanned by the rolling z-score detector and the correlation analyzer
ANALYZED_FIELDS = [
    "air_temperature_c",
    "soil_moisture_m3m3",
    "soil_temperature_c",
    "soil_ec_msm",
    "soil_ph",
    "soil_water_tension_kpa",
    "relative_humidity_pct",
    "dew_point_c",
    "ambient_co2_umolmol",
    "tvoc_ugm3",
    "solar_irradiance_wm2",
    "atmospheric_pressure_hpa",
    "rainfall_rate_mmh",
    "water_table_depth_m",
    "vpd_kpa",
]

FIELD_LABELS = {
    "air_temperature_c": "Air Temperature",
    "soil_moisture_m3m3": "Soil Moisture",
    "soil_temperature_c": "Soil Temperature",
    "soil_ec_msm": "Soil EC",
    "soil_ph": "Soil pH",
    "soil_water_tension_kpa": "Water Tension",
    "relative_humidity_pct": "Relative Humidity",
    "dew_point_c": "Dew Point",
    "ambient_co2_umolmol": "CO₂",
    "tvoc_ugm3": "TVOC",
    "solar_irradiance_wm2": "Solar Irradiance",
    "atmospheric_pressure_hpa": "Atmospheric Pressure",
    "rainfall_rate_mmh": "Rainfall Rate",
    "water_table_depth_m": "Water Table Depth",
    "vpd_kpa": "VPD",
    "frost_risk_flag": "Frost Risk",
}

FIELD_UNITS = {
    "air_temperature_c": "°C",
    "soil_moisture_m3m3": "m³/m³",
    "soil_temperature_c": "°C",
    "soil_ec_msm": "mS/m",
    "soil_ph": "",
    "soil_water_tension_kpa": "kPa",
    "relative_humidity_pct": "%",
    "dew_point_c": "°C",
    "ambient_co2_umolmol": "µmol/mol",
    "tvoc_ugm3": "µg/m³",
    "solar_irradiance_wm2": "W/m²",
    "atmospheric_pressure_hpa": "hPa",
    "rainfall_rate_mmh": "mm/hr",
    "water_table_depth_m": "m",
    "vpd_kpa": "kPa",
}

HAZARD_DISPLAY = {
    "pest_outbreak": {"icon": "🐛", "label": "Pest Outbreak", "color": "#ef4444"},
    "severe_drought": {"icon": "🏜️", "label": "Severe Drought", "color": "#f97316"},
    "frost_emergency": {"icon": "❄️", "label": "Frost Emergency", "color": "#3b82f6"},
    "chemical_hazard": {"icon": "☣️", "label": "Chemical Hazard", "color": "#a855f7"},
}

MINUTES_PER_DAY = 1440

# Equirectangular projection
METERS_PER_DEG_LAT = 111320
UNIT_METERS = 10
EARTH_RADIUS_M = 6371000
