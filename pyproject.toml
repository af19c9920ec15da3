[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tokenvm"
version = "0.0.1"
description = "State layout, address encoding and JSON-RPC service for a token virtual machine"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "token", "json-rpc", "key-value", "state", "bech32"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tokenvm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
