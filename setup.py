from __future__ import annotations

from setuptools import find_packages, setup

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

INSTALL_REQUIRES = [
    "sqlalchemy>=2.0",
    "pydantic>=2.5",
    "loguru>=0.7",
    "httpx>=0.27",
    "requests>=2.31",
    "feedparser>=6.0",
    "beautifulsoup4>=4.12",
    "markdown>=3.5",
    "python-dateutil>=2.8",
    "python-dotenv>=1.0",
    "tomli>=2.0; python_version < '3.11'",
    "tomli-w>=1.0",
    "fastapi>=0.110",
    "uvicorn>=0.29",
    "openai>=1.30",
    "anthropic>=0.30",
    "apscheduler>=3.10,<4",
]

if __name__ == "__main__":
    setup(
        name="redactor-ia",
        version=PROJECT_VERSION,
        python_requires=PYTHON_REQUIRES_SPECIFIER,
        packages=find_packages(include=["src", "src.*", "config", "redactor_ia"]),
        py_modules=["main", "run_scheduler"],
        install_requires=INSTALL_REQUIRES,
        extras_require={"test": ["pytest>=8.0", "hypothesis>=6.100"]},
        entry_points={
            "console_scripts": [
                "redactor-ia=main:main",
                "redactor-ia-config=redactor_ia.config_manager:main",
            ]
        },
    )
