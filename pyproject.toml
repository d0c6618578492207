[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lizardb"
version = "1.0.0"
description = "Reptile breeding management: terrariums, stock, transactions, users and system events"
requires-python = ">=3.10"
dependencies = []
keywords = ["reptiles", "breeding", "terrarium", "inventory", "transactions"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lizardb = "lizardb.app:main"

[tool.hatch.build.targets.wheel]
packages = ["lizardb"]

[tool.pytest.ini_options]
addopts = "-ra"
