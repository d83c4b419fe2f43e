"""
使用方式:
    python -m telemetry_aggregator
"""

from telemetry_aggregator.main import cli

if __name__ == "__main__":
    cli()
