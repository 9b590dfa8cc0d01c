"""
Setup script for featuremath package.
"""

from setuptools import setup, find_packages

setup(
    name="featuremath",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",

        # Web server
        "fastapi>=0.70.0",
        "uvicorn>=0.15.0",
        "pydantic>=1.8.0",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        # Testing
        "test": [
            "pytest>=6.0.0",
            "httpx>=0.23.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'featuremath=featuremath.__main__:main',
        ],
    },
    description="Dataset statistics, correlation, distributions, normalization and PCA",
    keywords="statistics, correlation, kde, normalization, pca",
    python_requires=">=3.8",
)
