#!/usr/bin/env python

from setuptools import find_packages, setup

setup(
    name="photoindex",
    version="0.1.0",
    description="Browsable, paginated photo library index over S3-compatible object storage",
    packages=find_packages(include=["photoindex", "photoindex.*"]),
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.11",
    keywords=["API", "photos", "S3"],
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Topic :: Multimedia :: Graphics",
    ],
    install_requires=[
        "fastapi",
        "uvicorn",
        "python-dotenv",
        "httpx",
        "authlib",
        "async-lru",
        "pydantic>=2",
        "pydantic-settings",
        "aiobotocore",
        "SQLAlchemy[asyncio]>=2.0",
        "aiosqlite",
        "Pillow>=10",
        "PyYAML",
        "anyio",
    ],
    extras_require={
        "test": [
            "pytest",
            "anyio",
        ],
        "dev": [
            "pytest",
            "mypy",
            "flake8",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "photoindex = photoindex.__main__:main",
        ]
    },
)
