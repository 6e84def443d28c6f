[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scnet"
version = "2.0.0"
description = "Small building blocks for network services: stream sockets, shutdown signal handling, a ring queue and size helpers"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "socket",
    "tcp",
    "unix socket",
    "signal",
    "shutdown",
    "queue",
    "ring buffer",
    "rc4",
    "systemd",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["scnet"]

[tool.hatch.build.targets.sdist]
include = ["scnet", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
