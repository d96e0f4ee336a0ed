"""
Setup file.
"""

import os

from setuptools import find_namespace_packages, setup

URL = "https://github.com/zackees/tsprism"
KEYWORDS = "typescript build esm commonjs exports package multi-target compiler"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        name="tsprism",
        version="0.1.0",
        description="Multi-target TypeScript package builder",
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.8",
        package_dir={"": "src"},
        packages=find_namespace_packages(where="src", include=["tsprism", "tsprism.*"]),
        install_requires=[
            "psutil",
            "pyyaml",
            "tqdm",
        ],
        extras_require={
            "test": ["pytest"],
        },
        package_data={"tsprism": ["assets/tsc_driver.js"]},
        include_package_data=True,
        entry_points={
            "console_scripts": [
                "tsprism=tsprism.cli:main",
            ],
        },
    )
