"""Setup configuration for the kbquery loader package."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="kbquery-loader",
    version="0.1.0",
    author="kbquery Contributors",
    description="Load tab-separated knowledge-base files into a SQL database with normalized lookup keys",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "docs", "docs.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=8.2.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
            "hypothesis>=6.98.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kbquery-load=kbquery.loader.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "kbquery": ["py.typed"],
    },
)
