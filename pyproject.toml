[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ipldeth"
version = "0.1.0"
description = "Read Ethereum IPLD data (headers, uncles, transactions, receipts, state and storage) from an indexed database."
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["ethereum", "ipld", "rlp", "merkle-patricia-trie", "indexer"]
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
    "Topic :: Database :: Front-Ends",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["ipldeth"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
