"""
Setup script for flotsam-srs.

flotsam schedules reviews of zk notes with the SM-2 algorithm. Scheduling
state lives in a SQLite store next to the notebook:

1. Review Engine - SM-2 grades to next due date
2. Scheduling Store - per-note state, cache metadata
3. Due Query - what to review today, overdue first

The 'flotsam' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="flotsam-srs",
    version="0.1.0",
    description="SM-2 spaced-repetition scheduling for zk note corpora",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Note frontmatter
        "pyyaml>=6.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "flotsam=flotsam.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="spaced-repetition sm2 zettelkasten zk cli",
)
