[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pkdomain"
version = "0.7.1"
description = "Tools for Public Key Domains: seeds and keys, simplified zone files, signed record packets, resolver configuration and a DNS-over-HTTPS endpoint."
requires-python = ">=3.11"
keywords = ["dns", "pkarr", "public-key-domains", "zone-file", "dns-over-https", "ed25519", "z-base-32"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
]
dependencies = [
    "dnspython>=2.4",
    "cryptography>=41",
    "requests>=2.31",
    "starlette>=0.37",
    "uvicorn>=0.29",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "responses>=0.25",
    "httpx>=0.27",
]

[project.scripts]
pkdomain = "pkdomain.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pkdomain"]

[tool.hatch.build.targets.sdist]
include = ["pkdomain", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 110
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
ignore_missing_imports = true
