"""
Setup script for bandexam-engine.

The band exam session engine turns a stream of partial answers and timing
events into a durable, scored attempt record for four-skill band exams
(reading, listening, writing, speaking). It ships as:

1. A library - SessionManager and the scoring components
2. An HTTP service - FastAPI routers for candidates and reviewers
3. A CLI - database setup, the expiry sweep and reviewer tools

The 'bandexam' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="bandexam-engine",
    version="1.0.0",
    description="Exam session lifecycle and band scoring engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "httpx>=0.25.0",
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
            "bandexam=bandexam.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education :: Testing",
    ],
    keywords="exam scoring band ielts session fastapi",
)
