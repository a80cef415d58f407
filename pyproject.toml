[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "milliframe"
version = "0.1.0"
description = "Service building blocks: layered configuration, message broker interfaces and Redis, MongoDB, MySQL and Elasticsearch connectors."
requires-python = ">=3.11"
keywords = [
    "configuration",
    "broker",
    "connector",
    "redis",
    "mongodb",
    "mysql",
    "elasticsearch",
    "microservices",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "pyyaml",
    "redis",
    "pymongo",
    "pymysql",
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["milliframe"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
ignore_missing_imports = true
