# File: levelcontrasts/setup.py
# Location: levelcontrasts/levelcontrasts/setup.py
"""
Setup script for levelcontrasts.

This file configures how the package is built, installed, and what
dependencies are required.
"""

import os
from setuptools import setup, find_packages

# Load version from version.py without importing the module
version = {}
with open(os.path.join("levelcontrasts", "version.py")) as f:
    exec(f.read(), version)

# Read the README for the long description
this_dir = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_dir, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="levelcontrasts",
    version=version["__version__"],
    description="Pairwise contrasts between levels of a categorical variable in count "
    "and compositional regression models.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "pandas",
        "patsy",
        "scipy",
        "statsmodels",
        "jinja2",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={"console_scripts": ["levelcontrasts=levelcontrasts.cli:main"]},
    include_package_data=True,
    package_data={"levelcontrasts": ["config.json", "templates/*.html"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
    ],
)
