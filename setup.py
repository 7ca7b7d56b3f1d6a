"""
Setup file.
"""

from setuptools import setup

KEYWORDS = "c c++ compiler toolchain msvc mingw wasm static-library build-script"


if __name__ == "__main__":
    setup(
        keywords=KEYWORDS,
        include_package_data=True)
