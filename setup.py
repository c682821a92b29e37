import os
from setuptools import setup, find_packages

setup(
    name="intellirack",
    version="1.0.0",
    description="IntelliRack: SDK and CLI for smart-shelf inventory racks",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="IntelliRack",
    packages=find_packages(include=["intellirack", "intellirack.*"]),
    install_requires=[
        "httpx>=0.24.0",
        "click>=8.0.0",
        "python-socketio[client]>=5.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "ruff>=0.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "intellirack=intellirack.cli:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
