"""
Setup script for the Book Lab package.
"""

from setuptools import setup, find_packages

# Read requirements
with open("requirements.txt", "r") as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

# Read the README for long description
with open("README.md", "r") as f:
    long_description = f.read()

setup(
    name="book-lab",
    version="0.1.0",
    description="A writing assistant that turns notes into topic-organized outlines, chapters and PDF books",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Book Lab Team",
    author_email="example@example.com",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
            "httpx>=0.24",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Text Processing :: General",
        "Topic :: Office/Business",
    ],
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "book-lab=book_lab.__main__:main",
        ],
    },
)
