[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "modelmaker"
version = "0.1.0"
description = "Persistence, services and Flask request handlers for a photogrammetry task backend"
requires-python = ">=3.10"
keywords = ["photogrammetry", "3d", "glb", "flask", "sqlalchemy", "object-storage"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Multimedia :: Graphics :: 3D Modeling",
]
dependencies = [
    "flask",
    "sqlalchemy",
    "requests",
    "pyjwt",
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
modelmaker-seed = "modelmaker.seeds:main"

[tool.hatch.build.targets.wheel]
packages = ["modelmaker"]

[tool.hatch.build.targets.sdist]
include = ["modelmaker", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
