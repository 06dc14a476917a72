"""
BlockLedger - Setup Configuration
===================================
Package installation configuration.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    with open(requirements_file) as f:
        requirements = [
            line.strip()
            for line in f
            if line.strip() and not line.startswith('#') and not line.startswith('-r')
        ]

setup(
    name="blockledger",
    version="1.0.0",
    author="BlockLedger Team",
    description="UTXO block ledger with bounded snapshot rollback",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "docs", "scripts"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Office/Business :: Financial",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.25.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.25.0",
            "black>=23.11.0",
            "mypy>=1.7.0",
            "ruff>=0.1.6",
        ],
        "postgres": [
            "psycopg[binary]>=3.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "blockledger=block_ledger.cli.main:app",
        ],
    },
    zip_safe=False,
    keywords=[
        "ledger",
        "utxo",
        "blockchain",
        "rollback",
        "snapshots",
    ],
)
