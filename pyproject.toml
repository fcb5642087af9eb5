[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "krapht"
version = "0.1.0"
description = "Composable data pipelines: sources, flows and sinks connected by thread-safe channels, with an event bus for errors, logs and metrics."
requires-python = ">=3.10"
dependencies = []
keywords = ["pipeline", "etl", "stream", "channel", "events", "dataflow"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["krapht"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
