[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "carbon-clickhouse"
version = "0.11.1"
description = "Graphite, Prometheus and Telegraf metrics receivers that encode points in ClickHouse RowBinary format"
requires-python = ">=3.10"
dependencies = [
    "lz4",
]
keywords = ["graphite", "carbon", "clickhouse", "metrics", "prometheus", "telegraf", "rowbinary"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["carbon_clickhouse"]

[tool.pytest.ini_options]
addopts = "-ra"
