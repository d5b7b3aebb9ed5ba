from setuptools import setup, find_packages

setup(
    name="track_creator",
    version="0.1.0",
    description="Helix fitting, calorimeter projection and PFO classification of tracker trajectories for particle flow",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(include=["track_creator", "track_creator.*"]),
    python_requires=">=3.10",
    install_requires=[
        # Runtime dependencies
        "numpy",
        "pandas",
        "matplotlib",
        "scipy",
        "networkx",
        "orjson",
    ],
    extras_require={
        # Developer extras
        "dev": [
            "pytest",
            "black",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            # CLI entry point for running main.py
            "track-creator=track_creator.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
