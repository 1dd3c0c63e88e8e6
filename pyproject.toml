[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ledsync"
version = "0.1.0"
description = "Core logic for networked LED controllers: palettes, effect base classes, clock overlay, presets and LAN time sync"
requires-python = ">=3.10"
dependencies = []
keywords = ["led", "palette", "effects", "udp", "time-sync", "presets", "seven-segment"]
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
    "Topic :: Home Automation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ledsync"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
