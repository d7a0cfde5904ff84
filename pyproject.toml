[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cdagent"
version = "0.1.0"
description = "Building blocks for an agent that keeps GitOps Application and AppProject resources in sync with a central principal"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "gitops",
    "continuous-delivery",
    "agent",
    "kubernetes",
    "application",
    "appproject",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cdagent"]

[tool.hatch.build.targets.sdist]
include = ["cdagent", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
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
