"""Setup configuration for adaptive-ai-service package."""

from setuptools import setup, find_packages

setup(
    name="adaptive-ai-service",
    version="1.0.0",
    description="Adaptive AI request orchestration with caching, batching and provider fallback",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0",
        "redis[hiredis]>=5.0.0",
        "openai>=1.0.0",
        "tiktoken>=0.5.0",
        "httpx>=0.27.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "click>=8.1.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
            "black>=23.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "adaptive-ai=adaptive_ai.cli.app:main",
        ],
    },
)
