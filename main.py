"""Main entry point for Fieldnet Sentinel."""

import sys
from loguru import logger


def simulate(minutes: int = 120, start: int = 360, style: str = "operator"):
    """Run the monitoring loop over a synthetic fleet."""
    from src.core.formatter import format_output
    from src.core.monitor import MonitoringLoop
    from src.data_sources import SeriesReadingSource, create_publisher, generate_demo_fleet, generate_fleet_series
    from src.utils.config import settings

    nodes = generate_demo_fleet()
    source = SeriesReadingSource(generate_fleet_series(nodes))
    loop = MonitoringLoop(settings, create_publisher(settings.publisher), local_cluster_id=nodes[0].cluster_id)
    loop.set_nodes(nodes)

    for minute in range(start, start + minutes):
        result = loop.tick(minute % 1440, source)
        if result.transitions or result.critical_alerts:
            print(format_output(result, style))
            print()

    print(f"Final: {loop.store.stats(n.node_id for n in loop.nodes)}")
    loop.publisher.close()


def analyze(node_id: str = "node-demo"):
    """Anomalies with correlated fields for one synthetic node-day."""
    from src.data_sources import generate_node_series
    from src.ml import CorrelationAnalyzer, format_time_minute
    from src.ml.anomaly import AnomalyDetector, summarize
    from src.utils.config import settings
    from src.utils.constants import FIELD_LABELS, FIELD_UNITS

    readings = generate_node_series(node_id)
    anomalies = AnomalyDetector(settings.anomaly).detect(readings)
    print(f"Anomalies for {node_id}: {summarize(anomalies)}")

    for item in CorrelationAnalyzer(settings.anomaly).annotate(anomalies, readings)[:20]:
        a = item.anomaly
        related = ", ".join(
            f"{FIELD_LABELS.get(c.field, c.field)} ({c.correlation:+.2f})" for c in item.correlations
        ) or "none"
        label = FIELD_LABELS.get(a.field, a.field)
        print(
            f"{format_time_minute(a.time_minute)} {label}={a.value:.2f}{FIELD_UNITS.get(a.field, '')} "
            f"z={a.z_score:+.2f} | {related}"
        )


def main():
    """Run the application."""
    if len(sys.argv) < 2:
        print("Usage: python main.py [api|simulate|analyze]")
        sys.exit(1)

    from src.utils.logger import setup_logging
    setup_logging()

    cmd = sys.argv[1]

    if cmd == "api":
        import uvicorn
        from src.utils.config import settings
        logger.info("Starting API server...")
        uvicorn.run("src.api.main:app", host=settings.api.host, port=settings.api.port, reload=settings.api.reload)

    elif cmd == "simulate":
        minutes = int(sys.argv[2]) if len(sys.argv) > 2 else 120
        start = int(sys.argv[3]) if len(sys.argv) > 3 else 360
        simulate(minutes, start)

    elif cmd == "analyze":
        analyze(sys.argv[2] if len(sys.argv) > 2 else "node-demo")

    else:
        print(f"Unknown command: {cmd}")
        sys.exit(1)


if __name__ == "__main__":
    main()
