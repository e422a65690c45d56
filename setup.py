"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="botchat-relay",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["botchat*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "python-multipart>=0.0.9",
        "pydantic>=2.5",
        "structlog>=23.1",
        "openai>=1.30",
        "prometheus-client>=0.19",
        "opentelemetry-instrumentation-fastapi>=0.44b0",
    ],
    entry_points={
        "console_scripts": ["botchat-relay=botchat.api.app:run"],
    },
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
