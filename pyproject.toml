[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gcpexporter"
version = "0.1.0"
description = "Data model, rate limiting and state stores for a GitLab CI pipelines metrics exporter"
requires-python = ">=3.10"
keywords = ["gitlab", "ci", "pipelines", "metrics", "exporter", "redis", "rate-limit"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "redis",
    "msgpack",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["gcpexporter"]

[tool.pytest.ini_options]
addopts = "-ra"
