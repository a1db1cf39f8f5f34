[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "opustags"
version = "1.10.1"
description = "View and edit the tags of Ogg Opus files"
requires-python = ">=3.10"
dependencies = []
keywords = ["opus", "ogg", "tags", "metadata", "vorbis-comment", "audio"]
classifiers = [
    "Development Status :: 5 - Production/Stable",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
opustags = "opustags.cli:main"
oggdump = "opustags.oggdump:main"

[tool.hatch.build.targets.wheel]
packages = ["opustags"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
