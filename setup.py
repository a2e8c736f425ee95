"""Setup configuration for the lsh-clone-detector package."""

import os
from setuptools import setup, find_packages

# Read the README for PyPI
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read version from package
version_file = os.path.join(os.path.dirname(__file__), "clonelsh", "__init__.py")
with open(version_file) as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"').strip("'")
            break
    else:
        version = "0.1.0"

setup(
    name="lsh-clone-detector",
    version=version,
    description="Find duplicated code with TF-IDF embeddings and random hyperplane LSH",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.21.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "benchmark": [
            "click>=8.0",
        ],
        "dev": [
            "pytest>=7.0",
            "coverage>=6.0",
            "click>=8.0",
        ],
    },
    keywords=[
        "code-clones",
        "duplicate-code",
        "locality-sensitive-hashing",
        "simhash",
        "tf-idf",
        "static-analysis",
    ],
)
