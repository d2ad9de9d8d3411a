"""Setup script for the agentoffice package."""

from setuptools import setup, find_packages

setup(
    name="agentoffice",
    version="0.1.0",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=23.2",
        "prometheus-client>=0.19",
        "uvicorn>=0.27",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.25",
        ],
    },
    description="agentoffice - agent state machine, decision engine and collaboration consensus core",
    author="agentoffice Team",
)
