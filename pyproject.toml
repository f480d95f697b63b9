[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chaosos"
version = "0.1.0"
description = "Operating-system fault injection experiments: packet drop, process, script, systemd and time faults"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "chaos-engineering",
    "fault-injection",
    "resilience",
    "iptables",
    "systemd",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["chaosos"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
