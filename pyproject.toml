[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "phev2mqtt"
version = "0.1.0"
description = "Protocol codec, TCP client and car emulator for the Mitsubishi Outlander PHEV Wi-Fi link"
requires-python = ">=3.10"
keywords = ["phev", "outlander", "mitsubishi", "vehicle", "protocol", "emulator"]
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
    "Topic :: Home Automation",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["phev2mqtt"]

[tool.pytest.ini_options]
addopts = "-ra"
