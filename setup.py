from setuptools import setup, find_packages
import os
import re


def get_version(module_file):
    """Return the version listed as `__version__` in the given module file."""
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), module_file)
    if not os.path.exists(path):
        raise RuntimeError(f"Unable to find {module_file}.")

    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    match = re.search("__version__ = ['\"]([^'\"]+)['\"]", content)
    if match:
        return match.group(1)
    raise RuntimeError(f"Unable to find __version__ string in {path}")


version = get_version('version.py')

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="trailhead-ingest",
    version=version,
    description="YouTube channel video, metadata and transcript ingestion for the Trailhead catalog",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=[
        "config", "enums", "exceptions", "logging_config", "main", "models",
        "server", "text_processing", "utils", "version",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7", "httpx>=0.24", "requests", "httplib2"],
    },
    entry_points={
        "console_scripts": [
            "trailhead-ingest=cli.ingest_cli:main",
            "trailhead-ingest-server=server:main",
        ],
    },
)
