[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minichain"
version = "0.1.0"
description = "A small proof-of-work blockchain with wallets, a UTXO set and a peer-to-peer node"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = [
    "blockchain",
    "proof-of-work",
    "utxo",
    "merkle-tree",
    "base58",
    "ecdsa",
    "wallet",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Education",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
minichain = "minichain.cli:main"
minichain-part1 = "minichain.tutorial.part1:main"
minichain-part2 = "minichain.tutorial.part2:main"
minichain-part3 = "minichain.tutorial.part3:main"
minichain-part4 = "minichain.tutorial.part4:main"

[tool.hatch.build.targets.wheel]
packages = ["minichain"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
