[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "m3services"
version = "0.1.0"
description = "Small web API services (JSON record store, currency, crypto, forex, geocoding, greeting) plus publishing and TypeScript client-generation tools"
requires-python = ">=3.10"
keywords = ["api", "services", "openapi", "typescript", "currency", "geocoding", "query", "sqlite"]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Code Generators",
]
dependencies = [
    "requests>=2.25",
    "semver>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "responses>=0.23",
]

[project.scripts]
m3services-publish = "m3services.publisher:main"
m3services-gen-clients = "m3services.tsgen:main"

[tool.hatch.build.targets.wheel]
packages = ["m3services"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
