"""ML module."""
from src.ml.anomaly import AnomalyDetector, detect_anomalies, format_time_minute
from src.ml.correlation import CorrelationAnalyzer, pearson_correlation
from src.ml.rolling import RollingStatistics, RollingStats
