[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mtcpkit"
version = "0.1.0"
description = "Small TCP/IP tools: a DNS resolver, a DHCP client, FTP user files, a TCP speed test, a netcat-style relay and a terminal screen model"
requires-python = ">=3.10"
dependencies = []
keywords = ["dns", "dhcp", "ftp", "terminal", "tcp", "networking", "speed test", "netcat"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: Terminals",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mtcp-sample = "mtcpkit.sample:main"
mtcp-dhcp = "mtcpkit.dhcp:main"
mtcp-spdtest = "mtcpkit.spdtest:main"

[tool.hatch.build.targets.wheel]
packages = ["mtcpkit"]

[tool.hatch.build.targets.sdist]
include = ["mtcpkit", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
