#!/usr/bin/env python
"""Setup script for the project."""

import re

from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as f:
    long_description: str = f.read()


with open("handmimic/requirements.txt", "r", encoding="utf-8") as f:
    requirements: list[str] = f.read().splitlines()


with open("handmimic/requirements-dev.txt", "r", encoding="utf-8") as f:
    requirements_dev: list[str] = f.read().splitlines()


with open("handmimic/requirements-tracking.txt", "r", encoding="utf-8") as f:
    requirements_tracking: list[str] = f.read().splitlines()


with open("handmimic/__init__.py", "r", encoding="utf-8") as fh:
    version_re = re.search(r"^__version__ = \"([^\"]*)\"", fh.read(), re.MULTILINE)
assert version_re is not None, "Could not find version in handmimic/__init__.py"
version: str = version_re.group(1)


setup(
    name="handmimic",
    version=version,
    description="Retargeting tracked hand landmarks onto robot and avatar hand models",
    author="Wesley Maa",
    url="https://github.com/WT-MM/HandPose",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={"dev": requirements_dev, "tracking": requirements_tracking},
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    package_data={"handmimic": ["requirements*.txt"]},
)
