[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "regsvc"
version = "0.1.0"
description = "Registration service building blocks: structured request logging, histogram metrics, toolchain resource clients and bearer-token auth middleware"
requires-python = ">=3.10"
dependencies = []
keywords = ["registration", "logging", "metrics", "histogram", "label-selector", "middleware", "bearer-token"]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: System :: Logging",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["regsvc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
