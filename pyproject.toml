[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "liftsync"
version = "0.1.0"
description = "Secure tokens, authentication rate limiting, configuration and live meet update sequencing for powerlifting meet servers"
requires-python = ">=3.11"
dependencies = []
keywords = ["tokens", "rate-limiting", "configuration", "powerlifting", "meet", "synchronisation", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: WWW/HTTP :: Session",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["liftsync"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
