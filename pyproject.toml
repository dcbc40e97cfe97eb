[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "svcdemo"
version = "0.1.0"
description = "A small layered web service: JSON gateway, tracing middleware, ID allocation, user storage and background jobs"
requires-python = ">=3.10"
keywords = ["web service", "flask", "json api", "id generator", "background jobs", "tracing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Framework :: Flask",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask",
    "sqlalchemy",
    "pyyaml",
    "redis",
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
svcdemo = "svcdemo.server:main"

[tool.hatch.build.targets.wheel]
packages = ["svcdemo"]

[tool.pytest.ini_options]
addopts = "-ra"
