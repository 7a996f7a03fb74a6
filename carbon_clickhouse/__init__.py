"""Graphite, Prometheus and Telegraf metric receivers and ClickHouse RowBinary helpers."""

__version__ = "0.11.1"