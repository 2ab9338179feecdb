[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zipkintrace"
version = "0.1.0"
description = "Zipkin distributed tracing: tracer, samplers, B3 propagation, baggage and span reporters"
requires-python = ">=3.10"
keywords = ["zipkin", "tracing", "distributed-tracing", "b3", "observability"]
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
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]
dependencies = [
    "pika",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["zipkintrace"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
