[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "psyne"
version = "2.0.1"
description = "Message channel building blocks: object and buffer pools, memory slabs and channel metrics collection"
requires-python = ">=3.10"
dependencies = []
keywords = ["messaging", "object-pool", "buffer-pool", "memory", "metrics", "latency"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["psyne"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
