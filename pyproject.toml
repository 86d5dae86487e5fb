[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodewarden"
version = "1.4.0"
description = "Web API, background maintenance operations and state sync orchestration for a fleet of blockchain nodes"
requires-python = ">=3.10"
keywords = [
    "blockchain",
    "cosmos",
    "state-sync",
    "node-management",
    "snapshots",
    "health-monitoring",
    "hermes",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "httpx>=0.25",
    "starlette>=0.36",
    "uvicorn>=0.27",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
    "respx>=0.21",
]

[tool.hatch.build.targets.wheel]
packages = ["nodewarden"]

[tool.hatch.build.targets.sdist]
include = ["nodewarden", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP", "SIM"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
ignore_missing_imports = true
