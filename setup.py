from setuptools import setup, find_namespace_packages

setup(
    name="ropchain",
    version="0.1.0",
    description="Railway-oriented pipelines: fold mixed steps into one fail-aware chain.",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["ropchain", "ropchain.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "ropchain-run=ropchain.app.runchain:main",
        ],
    },
)
