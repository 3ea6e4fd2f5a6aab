[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "numhunt"
version = "0.1.0"
description = "Aliquot sequence tools and Lucas-Lehmer searches for Mersenne primes with resumable checkpoints"
requires-python = ">=3.10"
dependencies = []
keywords = ["aliquot", "mersenne", "lucas-lehmer", "number-theory", "primes"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mersenne-explorer = "numhunt.explorer:main"
mersenne-searcher = "numhunt.searcher:main"

[tool.hatch.build.targets.wheel]
packages = ["numhunt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
