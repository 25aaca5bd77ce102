"""Setup script for the dashboard worker."""

from setuptools import setup, find_namespace_packages

setup(
    name="dashworker",
    version="1.0.0",
    description="Cached, authenticated read gateway for the projects dashboard",
    python_requires=">=3.11",
    packages=find_namespace_packages(include=["dashworker", "dashworker.*"]),
    py_modules=["main", "wsgi"],
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "gunicorn>=21.2",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
        "httpx>=0.27",
        "anyio>=4.0",
        "orjson>=3.9",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "respx>=0.21",
        ],
    },
)
