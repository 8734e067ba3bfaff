"""
setup.py for the linmpc Python package.

Install for development with:
    pip install -e ".[dev]"
"""

from setuptools import find_packages, setup

setup(
    name="linmpc",
    version="0.1.0",
    description="Linear MPC to QP formulation engine with incremental OSQP updates",
    package_dir={"": "python"},
    packages=find_packages(where="python", include=["linmpc", "linmpc.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "scipy>=1.7",
        "osqp>=1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "hypothesis>=6.0",
            "black>=23.0",
            "ruff>=0.1.0",
            "mypy>=1.0",
        ],
    },
)
