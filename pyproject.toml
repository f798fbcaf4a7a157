[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dialogtree"
version = "0.1.0"
description = "Command-line AI chat client with streamed answers and short chit-chat memory in Redis"
requires-python = ">=3.10"
keywords = ["chat", "ai", "cli", "llm", "dialog", "redis", "streaming", "sse"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "pyyaml",
    "redis",
    "requests",
    "sqlalchemy",
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dialogtree = "dialogtree.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["dialogtree"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
