"""
Setup script for codetutor.

CodeTutor is an AI programming tutor. A three-question assessment places the
learner on an adaptive level, Gemini generates a personalized curriculum, and
learning sessions pair a chat tutor with an editor watched by an AI code
watcher.

The 'codetutor' command is the CLI entry point; the HTTP API runs with
'codetutor serve' or 'uvicorn main:app'.
"""

from setuptools import find_packages, setup

setup(
    name="codetutor",
    version="0.1.0",
    description="AI programming tutor with an adaptive, Gemini-generated curriculum",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Database
        "sqlalchemy>=2.0.0,<2.1",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP (FastAPI TestClient)
        "httpx>=0.25.0",
        # AI
        "google-generativeai>=0.3.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "codetutor=src.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: FastAPI",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="tutor programming education gemini curriculum",
)
