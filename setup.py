"""
Setup script for Gemini Hybrid
"""

from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", encoding="utf-8") as fh:
    requirements = [
        line.strip() for line in fh if line.strip() and not line.startswith("#")
    ]

setup(
    name="gemini-hybrid",
    version="0.1.0",
    description=(
        "Adaptive schema-conforming generation and task-scoped sessions over "
        "stateful on-device and stateless Gemini models"
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=("gemini_hybrid", "gemini_hybrid.*")),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.13",
    ],
    python_requires=">=3.13",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
