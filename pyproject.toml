[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emtrackid"
version = "0.1.0"
description = "EM/track hit tagging, waveform ROI finding and NumPy record-array writing for LArTPC reconstruction"
requires-python = ">=3.10"
dependencies = []
keywords = ["lartpc", "neutrino", "reconstruction", "cnn", "npy", "roi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Physics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["emtrackid"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
