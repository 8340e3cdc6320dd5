[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "grossd"
version = "1.0.0"
description = "Greylisting building blocks: rotating Bloom filters, delay queues, configuration parsing and check verdicts for a mail policy service"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "greylisting",
    "email",
    "spam",
    "dnsbl",
    "bloom-filter",
    "policy",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Email :: Filters",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["grossd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
