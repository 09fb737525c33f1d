[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fundpool"
version = "0.1.0"
description = "A pooled-funding contract: contributions, proposals, voting and payout to the winning proposal"
requires-python = ">=3.10"
dependencies = []
keywords = ["crowdfunding", "voting", "pool", "bitcoin", "contract", "borsh"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fundpool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
