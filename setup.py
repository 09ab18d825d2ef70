from setuptools import setup, find_packages

setup(
    name="dvid-mesh",
    version="1.0.0",
    description="Merge-graph mesh fragment resolver and decoder for DVID servers",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "aiohttp>=3.8",
        "numpy>=1.21",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "colorama>=0.4",
        "prometheus-client>=0.16",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "dvid-mesh=dvid_mesh.main:cli",
        ],
    },
    author="DVID Mesh Team",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
)
