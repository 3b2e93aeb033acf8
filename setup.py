"""
Setup script for market-data-backfill package.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the contents of README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

# Read requirements
requirements = [
    "yfinance>=0.2.61",
    "sqlalchemy>=2.0.23",
    "pandas>=2.1.4",
    "requests>=2.31.0",
    "apscheduler>=3.10,<4",
    "redis>=5.0.0",
    "pyyaml>=6.0"
]

setup(
    name="market-data-backfill",
    version="1.0.0",
    description="Scheduled, idempotent backfills of market data into SQLite",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Financial :: Investment",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "fakeredis>=2.20.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "market-backfill=market_backfill.cli.main:main",
            "mbf=market_backfill.cli.main:main",  # Short alias
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="finance, stocks, market data, backfill, scheduler, yahoo finance",
)
