[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gpufeatures"
version = "0.14.1"
description = "GPU node feature labels, MIG strategy handling and device-plugin allocation responses for Kubernetes nodes"
requires-python = ">=3.10"
dependencies = []
keywords = ["gpu", "kubernetes", "node-labels", "mig", "device-plugin", "cdi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gpufeatures"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
