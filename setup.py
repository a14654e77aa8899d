# setup.py
from setuptools import setup, find_packages

setup(
    name="stabilizer",
    version="0.1.0",
    description="Rewrite floating-point expressions for accuracy via a cached external solver",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "sympy",
        "mpmath",
        "numpy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "stabilizer = stabilizer.cli:main",
        ],
    },
)
