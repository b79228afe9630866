from setuptools import setup, find_packages

setup(
    name="fmt_alignment",
    version="0.1.0",
    description="FMT trajectory-point extraction for CLAS12 forward micromegas alignment",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # Runtime dependencies
        "numpy",
        "pandas",
        "matplotlib",
        "orjson",
    ],
    extras_require={
        # HIPO file reader, only needed to stream real data
        "hipo": [
            "hipopy",
        ],
        # Developer extras
        "dev": [
            "pytest",
            "black",
            "mypy",
        ],
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            # CLI entry point for running main.py
            "fmt-alignment=fmt_alignment.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
