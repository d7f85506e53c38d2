"""
Planroom setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="planroom",
    version="1.0.0",
    description="Planroom — hierarchical locations, drawing sets and versioned drawing sheets",
    packages=find_packages(include=["planroom", "planroom.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "planroom=planroom.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "networkx>=3.2",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)
